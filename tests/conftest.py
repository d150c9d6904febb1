"""Shared fixtures: an in-memory Firestore double and app wiring."""

import copy
import itertools
from typing import Callable

import pytest
import requests
from fastapi.testclient import TestClient
from google.api_core.exceptions import NotFound, ServiceUnavailable

from app.main import create_app
from app.repos.firestore_repo import JobRepo
from app.repos.local_backup import LocalBackup
from app.services.brightdata_client import BrightDataClient

_ids = itertools.count(1)

# make_client fixture: (secret=..., **overrides) -> TestClient
ClientFactory = Callable[..., TestClient]


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, store, doc_id):
        self._store = store
        self.id = doc_id

    def get(self):
        return FakeSnapshot(self.id, self._store.get(self.id))

    def set(self, data):
        self._store[self.id] = copy.deepcopy(data)

    def update(self, data):
        if self.id not in self._store:
            raise NotFound(f"No document to update: {self.id}")
        doc = self._store[self.id]
        for key, value in data.items():
            target = doc
            *parents, leaf = key.split(".")
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = copy.deepcopy(value)

    def delete(self):
        self._store.pop(self.id, None)


class FakeQuery:
    def __init__(self, store, filters=(), order=None, limit=None):
        self._store = store
        self._filters = list(filters)
        self._order = order
        self._limit = limit

    def where(self, filter):
        return FakeQuery(
            self._store,
            self._filters + [(filter.field_path, filter.op_string, filter.value)],
            self._order,
            self._limit,
        )

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self._store, self._filters, (field, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self._store, self._filters, self._order, count)

    def stream(self):
        docs = [
            (doc_id, data)
            for doc_id, data in self._store.items()
            if all(op == "==" and data.get(f) == v for f, op, v in self._filters)
        ]
        if self._order:
            field, direction = self._order
            docs.sort(key=lambda d: d[1].get(field), reverse=direction == "DESCENDING")
        if self._limit is not None:
            docs = docs[: self._limit]
        return iter([FakeSnapshot(doc_id, copy.deepcopy(data)) for doc_id, data in docs])


class FakeCollection(FakeQuery):
    def __init__(self, store):
        super().__init__(store)

    def add(self, data):
        doc_id = f"doc{next(_ids)}"
        self._store[doc_id] = copy.deepcopy(data)
        return None, FakeDocument(self._store, doc_id)

    def document(self, doc_id):
        return FakeDocument(self._store, doc_id)


class FakeFirestore:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return FakeCollection(self.collections.setdefault(name, {}))


class BrokenFirestore:
    """Every call fails the way an unreachable backend does."""

    def collection(self, name):
        raise ServiceUnavailable("firestore unreachable")


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    """Records trigger calls; answers from ``responses`` keyed by dataset id."""

    def __init__(self, responses=None, default=None):
        self.headers = {}
        self.calls = []
        self.responses = responses or {}
        self.default = default if default is not None else {"snapshot_id": "s_default"}

    def post(self, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append(
            {"url": url, "params": params, "json": json, "headers": headers, "timeout": timeout}
        )
        answer = self.responses.get(params.get("dataset_id"), self.default)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, FakeResponse):
            return answer
        return FakeResponse(answer)


@pytest.fixture()
def firestore_client():
    return FakeFirestore()


@pytest.fixture()
def repo(firestore_client):
    return JobRepo(client=firestore_client)


@pytest.fixture()
def backup(tmp_path):
    return LocalBackup(str(tmp_path / "output"))


@pytest.fixture()
def session():
    return FakeSession()


@pytest.fixture()
def brightdata(session):
    return BrightDataClient(
        api_key="bd-key",
        dataset_id="ds_linkedin",
        indeed_dataset_id="ds_indeed",
        indeed_api_key="indeed-key",
        webhook_url="https://relay.example.com/v1/webhook",
        webhook_secret="s3cret-value",
        session=session,
    )


@pytest.fixture()
def make_client(repo, backup, brightdata):
    def _make(secret="s3cret-value", **overrides):
        app = create_app(
            repo=overrides.get("repo", repo),
            backup=overrides.get("backup", backup),
            brightdata=overrides.get("brightdata", brightdata),
            webhook_secret=secret,
        )
        return TestClient(app)

    return _make


@pytest.fixture()
def client(make_client):
    return make_client(secret="")


@pytest.fixture()
def broken_repo():
    return JobRepo(client=BrokenFirestore())
