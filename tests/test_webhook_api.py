"""End-to-end tests for webhook delivery and result lookup over HTTP."""

import os

import pytest
from fastapi.testclient import TestClient

from app.repos.firestore_repo import JobRepo
from app.repos.local_backup import LocalBackup
from tests.conftest import ClientFactory, FakeFirestore

SECRET = "s3cret-value"

RECORDS = [
    {"job_title": "Nurse", "company_name": "City Hospital", "url": "https://example.com/1"},
    {"job_title": "Pharmacist", "company_name": "MedPlus", "url": "https://example.com/2"},
    {"job_title": "Lab Tech", "company_name": "Apollo", "url": "https://example.com/3"},
]


def _files(backup: LocalBackup) -> list:
    if not os.path.isdir(backup.output_dir):
        return []
    return sorted(os.listdir(backup.output_dir))


class TestWebhookAuth:
    @pytest.mark.parametrize(
        "headers,params",
        [
            ({"Authorization": f"Bearer {SECRET}"}, {}),
            ({"Authorization": SECRET}, {}),
            ({"x-brightdata-auth": SECRET}, {}),
            ({}, {"auth_header": SECRET}),
        ],
    )
    def test_secret_accepted_anywhere(
        self, make_client: ClientFactory, headers: dict, params: dict
    ) -> None:
        api = make_client(secret=SECRET)
        resp = api.post(
            "/v1/webhook",
            json={"data": RECORDS, "snapshot_id": "s_auth"},
            headers=headers,
            params=params,
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_wrong_secret(
        self, make_client: ClientFactory, repo: JobRepo, backup: LocalBackup
    ) -> None:
        api = make_client(secret=SECRET)
        resp = api.post(
            "/v1/webhook",
            json={"data": RECORDS, "snapshot_id": "s_auth"},
            headers={"Authorization": "Bearer wrong"},
        )

        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert repo.find_by_batch_id("s_auth") is None
        assert _files(backup) == []

    def test_missing_secret(self, make_client: ClientFactory) -> None:
        api = make_client(secret=SECRET)
        resp = api.post("/v1/webhook", json={"data": [], "snapshot_id": "s_auth"})
        assert resp.status_code == 401

    def test_no_secret_configured_accepts_all(self, client: TestClient) -> None:
        resp = client.post("/v1/webhook", json={"data": RECORDS, "snapshot_id": "s_open"})
        assert resp.status_code == 200

    def test_other_methods_rejected(self, client: TestClient) -> None:
        assert client.put("/v1/webhook", json={}).status_code == 405


class TestWebhookDelivery:
    def test_unrecognized_payload(
        self, client: TestClient, repo: JobRepo, backup: LocalBackup
    ) -> None:
        resp = client.post("/v1/webhook", json={})
        body = resp.json()

        assert resp.status_code == 400
        assert body["success"] is False
        assert body["error"] == "ShapeDetectionFailure"
        assert body["receivedKeys"] == []
        assert "snapshot_id" in body["hint"]
        assert repo.list_all() == []
        assert _files(backup) == []

    def test_received_keys_reported(self, client: TestClient) -> None:
        body = client.post("/v1/webhook", json={"foo": 1, "bar": 2}).json()
        assert sorted(body["receivedKeys"]) == ["bar", "foo"]

    def test_trigger_then_deliver_completes_placeholder(
        self, client: TestClient, repo: JobRepo, backup: LocalBackup
    ) -> None:
        triggered = client.post("/v1/trigger", json={"keyword": "nurse", "location": "Pune"}).json()
        batch_id = triggered["batchId"]

        placeholder = repo.find_by_batch_id(batch_id)
        assert placeholder["status"] == "triggered"
        assert placeholder["counters"]["resultCount"] == 0

        resp = client.post("/v1/webhook", json={"data": RECORDS, "snapshot_id": batch_id})
        body = resp.json()

        assert resp.status_code == 200
        assert body["success"] is True
        assert body["batchId"] == batch_id
        assert body["status"] == "completed"
        assert body["resultCount"] == 3
        assert body["store"]["saved"] is True
        assert body["store"]["action"] == "updated"
        assert body["store"]["documentId"] == placeholder["id"]
        assert set(body["savedFiles"]) == {"webhook", "data"}

        job = repo.find_by_batch_id(batch_id)
        assert job["id"] == placeholder["id"]
        assert job["status"] == "completed"
        assert job["category"] == "job_search"
        assert job["results"] == RECORDS
        assert job["counters"]["resultCount"] == 3
        assert job["searchParams"]["keyword"] == "nurse"
        assert "triggeredAt" in job["metadata"]
        assert "completedAt" in job["metadata"]
        assert job["metadata"]["webhookPayload"]["snapshot_id"] == batch_id

        assert len(_files(backup)) == 2

    def test_redelivery_is_idempotent(
        self, client: TestClient, repo: JobRepo, backup: LocalBackup
    ) -> None:
        payload = {"data": RECORDS, "snapshot_id": "s_twice"}
        first = client.post("/v1/webhook", json=payload).json()
        second = client.post("/v1/webhook", json=payload).json()

        assert first["store"]["action"] == "created"
        assert second["store"]["action"] == "updated"
        assert first["store"]["documentId"] == second["store"]["documentId"]

        jobs = repo.list_all()
        assert len(jobs) == 1
        assert jobs[0]["counters"]["resultCount"] == 3
        assert len(_files(backup)) == 4

    def test_completion_lands_in_the_partition_holding_the_job(
        self, client: TestClient, repo: JobRepo, firestore_client: FakeFirestore
    ) -> None:
        batch_id = client.post("/v1/trigger", json={"keyword": "nurse"}).json()["batchId"]
        placeholder = repo.find_by_batch_id(batch_id)
        stored = firestore_client.collections["brightdata_jobs"][placeholder["id"]]
        stored["category"] = "indeed_jobs"

        body = client.post("/v1/webhook", json={"data": RECORDS, "snapshot_id": batch_id}).json()

        assert body["store"]["saved"] is True
        assert body["store"]["action"] == "updated"
        job = repo.find_by_batch_id(batch_id)
        assert job["category"] == "job_search"
        assert job["counters"]["resultCount"] == 3

    def test_unknown_batch_is_classified(self, client: TestClient, repo: JobRepo) -> None:
        records = [{"domain": "indeed.com", "job_title": "Nurse",
                    "input": {"keyword_search": "nurse", "country": "IN", "domain": "indeed.com"}}]
        client.post("/v1/webhook", json={"data": records, "snapshot_id": "s_indeed"})

        job = repo.find_by_batch_id("s_indeed")
        assert job["category"] == "indeed_jobs"
        assert job["searchParams"]["keyword"] == "nurse"
        assert job["metadata"]["webhookPayload"]["snapshot_id"] == "s_indeed"

    def test_bare_array(self, client: TestClient, repo: JobRepo) -> None:
        body = client.post("/v1/webhook", json=RECORDS).json()

        assert body["resultCount"] == 3
        assert body["batchId"].startswith("job_")
        assert repo.find_by_batch_id(body["batchId"])["counters"]["resultCount"] == 3

    def test_status_only_updates_existing(self, client: TestClient, repo: JobRepo) -> None:
        batch_id = client.post("/v1/trigger", json={"keyword": "nurse"}).json()["batchId"]

        body = client.post(
            "/v1/webhook", json={"status": "failed", "snapshot_id": batch_id}
        ).json()

        assert body["status"] == "failed"
        assert body["resultCount"] == 0
        assert body["store"]["action"] == "status_updated"
        assert body["savedFiles"] == {"webhook": body["savedFiles"]["webhook"]}

        job = repo.find_by_batch_id(batch_id)
        assert job["status"] == "failed"
        assert job["metadata"]["webhookPayload"]["status"] == "failed"
        assert "lastStatusUpdate" in job["metadata"]

    def test_status_only_for_unknown_batch(self, client: TestClient, repo: JobRepo) -> None:
        body = client.post("/v1/webhook", json={"status": "running", "id": "s_ghost"}).json()

        assert body["success"] is True
        assert body["store"]["saved"] is False
        assert repo.find_by_batch_id("s_ghost") is None

    def test_store_outage_still_acknowledged(
        self, make_client: ClientFactory, broken_repo: JobRepo, backup: LocalBackup
    ) -> None:
        api = make_client(secret="", repo=broken_repo)
        resp = api.post("/v1/webhook", json={"data": RECORDS, "snapshot_id": "s_down"})
        body = resp.json()

        assert resp.status_code == 200
        assert body["success"] is True
        assert body["store"]["saved"] is False
        assert body["store"]["error"]
        assert len(_files(backup)) == 2


class TestWebhookResults:
    def test_prefers_store(self, client: TestClient, repo: JobRepo) -> None:
        client.post("/v1/webhook", json={"data": RECORDS, "snapshot_id": "s_r"})
        job = repo.find_by_batch_id("s_r")
        repo.update_by_doc_id(job["id"], {"results": RECORDS[:1]}, job["category"])

        body = client.get("/v1/webhook", params={"batchId": "s_r"}).json()

        assert body["found"] is True
        assert body["source"] == "store"
        assert body["resultCount"] == 1
        assert body["store"]["documentId"] == job["id"]
        assert body["local"]["resultCount"] == 3

    def test_falls_back_to_local(self, client: TestClient, backup: LocalBackup) -> None:
        backup.write_records("s_local", RECORDS)

        body = client.get("/v1/webhook", params={"batchId": "s_local"}).json()

        assert body["found"] is True
        assert body["source"] == "local"
        assert body["results"] == RECORDS
        assert body["store"]["available"] is False

    def test_local_when_store_down(
        self, make_client: ClientFactory, broken_repo: JobRepo, backup: LocalBackup
    ) -> None:
        backup.write_records("s_local", RECORDS)
        api = make_client(secret="", repo=broken_repo)

        body = api.get("/v1/webhook", params={"batchId": "s_local"}).json()

        assert body["source"] == "local"
        assert body["store"]["error"]

    def test_nothing_yet(self, client: TestClient) -> None:
        resp = client.get("/v1/webhook", params={"batchId": "s_pending"})
        body = resp.json()

        assert resp.status_code == 200
        assert body["found"] is False
        assert body["store"]["status"] == "not_found"

    def test_batch_id_required(self, client: TestClient) -> None:
        assert client.get("/v1/webhook").status_code == 422
