# app/repos/firestore_repo.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from app.errors import PersistenceFailure, UnknownCategory
from app.schemas.job import JobRecord

logger = logging.getLogger(__name__)

# category → collection, in findByBatchId scan order
CATEGORY_COLLECTIONS: Dict[str, str] = {
    "job_search": "brightdata_jobs",
    "linkedin_jobs": "linkedin_jobs",
    "indeed_jobs": "indeed_jobs",
    "linkedin_company": "linkedin_companies",
    "manual": "manual_jobs",
    "unknown": "unclassified_jobs",
}

STORE_ERRORS = (GoogleAPICallError, RetryError)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def strip_empty(value: Any) -> Any:
    """
    Firestore rejects explicit absence markers, so every write goes through this.

    - None values are dropped at any depth
    - nested objects that end up empty are dropped too
    - lists keep their order and their (possibly empty) object elements
    """
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            if item is None:
                continue
            item = strip_empty(item)
            if isinstance(item, dict) and not item:
                continue
            cleaned[key] = item
        return cleaned

    if isinstance(value, list):
        return [strip_empty(item) for item in value if item is not None]

    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _created_at(record: Dict[str, Any]) -> datetime:
    created = record.get("createdAt")
    if isinstance(created, datetime):
        return created if created.tzinfo else created.replace(tzinfo=timezone.utc)
    return _EPOCH


class JobRepo:
    """
    Job records in Firestore, one collection per category.

    The batch id is not partition-scoped, so lookups by batch id
    scan every collection in CATEGORY_COLLECTIONS order.
    """

    def __init__(self, client=None, project: Optional[str] = None):
        self._db = client

        if self._db is not None or not project:
            return

        try:
            self._db = firestore.Client(project=project)
            logger.info("Firestore initialized for project %s", project)
        except DefaultCredentialsError as e:
            logger.warning("Firestore disabled due to missing credentials: %s", e)
            self._db = None

    def enabled(self) -> bool:
        return self._db is not None

    # ---------------------------------------------------
    # Helpers
    # ---------------------------------------------------
    def _require_db(self):
        if self._db is None:
            raise PersistenceFailure("Firestore is not configured")
        return self._db

    def _collection(self, category: str):
        name = CATEGORY_COLLECTIONS.get(category)
        if name is None:
            raise UnknownCategory(category)
        return self._require_db().collection(name)

    @staticmethod
    def _to_record(doc, category: str) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        # the partition the document lives in is authoritative
        data["category"] = category
        return data

    def _locate(self, docId: str, category: Optional[str] = None):
        categories = [category] if category else list(CATEGORY_COLLECTIONS)
        for cat in categories:
            ref = self._collection(cat).document(docId)
            if ref.get().exists:
                return ref
        return None

    # ---------------------------------------------------
    # Writes
    # ---------------------------------------------------
    def insert(self, record: JobRecord) -> str:
        if record.category not in CATEGORY_COLLECTIONS:
            raise UnknownCategory(record.category)

        now = _now()
        data = record.model_dump()
        data["createdAt"] = record.createdAt or now
        data["updatedAt"] = now
        data = strip_empty(data)
        # counted after stripping so the stored list and its count agree
        result_count = len(data.get("results", []))
        data["counters"] = {"resultCount": result_count}

        try:
            _, ref = self._collection(record.category).add(data)
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to save job {record.batchId}: {e}") from e

        logger.info(
            "Saved job %s as %s/%s (%d results)",
            record.batchId, record.category, ref.id, result_count,
        )
        return ref.id

    def update_by_doc_id(
        self,
        docId: str,
        partial: Dict[str, Any],
        category: Optional[str] = None,
    ) -> None:
        """
        Top-level fields in ``partial`` replace the stored ones.
        Writing ``results`` always refreshes ``counters.resultCount``.
        ``id`` and ``category`` are fixed by where the document lives and
        are never written.
        """
        updates = dict(partial)
        updates.pop("id", None)
        updates.pop("category", None)
        updates["updatedAt"] = _now()
        updates = strip_empty(updates)
        if isinstance(updates.get("results"), list):
            updates["counters"] = {"resultCount": len(updates["results"])}

        try:
            if category:
                ref = self._collection(category).document(docId)
            else:
                ref = self._locate(docId)
                if ref is None:
                    raise PersistenceFailure(f"Job document not found: {docId}")
            ref.update(updates)
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to update job {docId}: {e}") from e

        logger.info("Updated job document %s (%s)", docId, ", ".join(sorted(updates)))

    def delete_by_doc_id(self, docId: str, category: Optional[str] = None) -> bool:
        try:
            ref = self._locate(docId, category)
            if ref is None:
                return False
            ref.delete()
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to delete job {docId}: {e}") from e

        logger.info("Deleted job document %s", docId)
        return True

    # ---------------------------------------------------
    # Reads
    # ---------------------------------------------------
    def find_by_batch_id(self, batchId: str) -> Optional[Dict[str, Any]]:
        try:
            for category in CATEGORY_COLLECTIONS:
                docs = (
                    self._collection(category)
                    .where(filter=FieldFilter("batchId", "==", batchId))
                    .limit(1)
                    .stream()
                )
                for doc in docs:
                    return self._to_record(doc, category)
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to look up batch {batchId}: {e}") from e

        return None

    def get_by_doc_id(
        self, docId: str, category: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        categories = [category] if category else list(CATEGORY_COLLECTIONS)
        try:
            for cat in categories:
                doc = self._collection(cat).document(docId).get()
                if doc.exists:
                    return self._to_record(doc, cat)
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to read job {docId}: {e}") from e

        return None

    def list_by_category(self, category: str, limit: int = 50) -> List[Dict[str, Any]]:
        if category not in CATEGORY_COLLECTIONS:
            raise UnknownCategory(category)

        try:
            query = (
                self._collection(category)
                .order_by("createdAt", direction=firestore.Query.DESCENDING)
                .limit(limit)
            )
            return [self._to_record(doc, category) for doc in query.stream()]
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to list {category} jobs: {e}") from e

    def list_all(self, limit: int = 50) -> List[Dict[str, Any]]:
        jobs: List[Dict[str, Any]] = []
        for category in CATEGORY_COLLECTIONS:
            jobs.extend(self.list_by_category(category, limit))

        jobs.sort(key=_created_at, reverse=True)
        return jobs[:limit]

    def list_by_status(self, status: str, limit: int = 50) -> List[Dict[str, Any]]:
        jobs: List[Dict[str, Any]] = []
        try:
            for category in CATEGORY_COLLECTIONS:
                query = self._collection(category).where(
                    filter=FieldFilter("status", "==", status)
                )
                jobs.extend(self._to_record(doc, category) for doc in query.stream())
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to list {status} jobs: {e}") from e

        jobs.sort(key=_created_at, reverse=True)
        return jobs[:limit]

    def _all_records(self) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        try:
            for category in CATEGORY_COLLECTIONS:
                records.extend(
                    self._to_record(doc, category)
                    for doc in self._collection(category).stream()
                )
        except STORE_ERRORS as e:
            raise PersistenceFailure(f"Failed to scan jobs: {e}") from e
        return records

    # ---------------------------------------------------
    # Reporting / maintenance
    # ---------------------------------------------------
    def stats(self) -> Dict[str, Any]:
        records = self._all_records()

        by_status: Dict[str, int] = {}
        by_category: Dict[str, int] = {}
        total_results = 0

        for record in records:
            status = record.get("status", "unknown")
            by_status[status] = by_status.get(status, 0) + 1
            by_category[record["category"]] = by_category.get(record["category"], 0) + 1

            results = record.get("results")
            if isinstance(results, list):
                total_results += len(results)
            else:
                total_results += (record.get("counters") or {}).get("resultCount", 0)

        total = len(records)
        return {
            "total": total,
            "byStatus": by_status,
            "byCategory": by_category,
            "totalResults": total_results,
            "averageResultsPerJob": round(total_results / total, 2) if total else 0,
            "lastUpdated": _now(),
        }

    def find_count_mismatches(self) -> List[Dict[str, Any]]:
        mismatches = []
        for record in self._all_records():
            results = record.get("results")
            actual = len(results) if isinstance(results, list) else 0
            recorded = (record.get("counters") or {}).get("resultCount", 0)
            if actual != recorded:
                mismatches.append(record)

        logger.info("Found %d jobs with resultCount drift", len(mismatches))
        return mismatches

    def repair_result_counts(self) -> int:
        """
        Recomputes counters.resultCount from len(results) wherever they disagree.
        Returns how many records were corrected.
        """
        fixed = 0
        for record in self.find_count_mismatches():
            results = record.get("results")
            actual = len(results) if isinstance(results, list) else 0
            metadata = dict(record.get("metadata") or {})
            metadata["fixedAt"] = _now()

            self.update_by_doc_id(
                record["id"],
                {"counters": {"resultCount": actual}, "metadata": metadata},
                record["category"],
            )
            logger.info(
                "Fixed resultCount for %s: %s -> %d",
                record["id"],
                (record.get("counters") or {}).get("resultCount", 0),
                actual,
            )
            fixed += 1

        return fixed
