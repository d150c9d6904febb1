# app/services/webhook_receiver.py
import hmac
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from app.errors import PersistenceFailure, ShapeDetectionFailure, UnauthorizedWebhook
from app.repos.firestore_repo import JobRepo
from app.repos.local_backup import LocalBackup
from app.schemas.job import JobMetadata, JobRecord, SearchParams
from app.services.payload_shapes import describe_keys, detect
from app.services.record_classifier import classify, extract_search_params

logger = logging.getLogger(__name__)

# Headers BrightData may carry the secret in, besides Authorization
VENDOR_AUTH_HEADERS = ("x-brightdata-auth", "brightdata-auth")
AUTH_QUERY_PARAM = "auth_header"

PREVIEW_CHARS = 6


def _matches(candidate: Optional[str], expected: str) -> bool:
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


def _preview(value: Optional[str]) -> str:
    if not value:
        return "<none>"
    return value[:PREVIEW_CHARS] + "..."


class WebhookReceiver:
    """
    Handles one BrightData delivery at a time:
    authorize → detect shape → back up locally → reconcile with the store.

    There is no locking per batch id: two concurrent deliveries for the same
    batch both read-then-write and the later write wins.
    """

    def __init__(self, repo: JobRepo, backup: LocalBackup, secret: str = ""):
        self.repo = repo
        self.backup = backup
        self.secret = secret

    # --------------------------------------------------
    # Auth
    # --------------------------------------------------
    def authorize(self, headers: Mapping[str, str], query: Mapping[str, str]) -> None:
        """
        Any one of these carrying the secret is enough:
        - Authorization: Bearer <secret>
        - Authorization: <secret>
        - x-brightdata-auth / brightdata-auth: <secret>
        - ?auth_header=<secret>
        """
        if not self.secret:
            return

        headers = {k.lower(): v for k, v in headers.items()}
        auth = headers.get("authorization", "")
        vendor = next((headers[h] for h in VENDOR_AUTH_HEADERS if headers.get(h)), "")
        param = query.get(AUTH_QUERY_PARAM, "")

        candidates = [auth, vendor, param]
        if auth.startswith("Bearer "):
            candidates.append(auth[len("Bearer "):])

        if any(_matches(c, self.secret) for c in candidates):
            return

        logger.warning(
            "Unauthorized webhook attempt (authorization=%s, vendor=%s, query=%s, expectedLength=%d)",
            _preview(auth), _preview(vendor), _preview(param), len(self.secret),
        )
        raise UnauthorizedWebhook("Unauthorized webhook attempt")

    # --------------------------------------------------
    # Delivery
    # --------------------------------------------------
    def receive(self, payload: Any) -> Dict[str, Any]:
        detected = detect(payload)

        if not detected.batchId:
            logger.error("No snapshot id in webhook payload (shape=%s)", detected.shape.value)
            raise ShapeDetectionFailure(
                "No snapshot ID found in payload", describe_keys(payload)
            )

        batch_id = detected.batchId
        records = detected.records
        logger.info(
            "Webhook for %s: shape=%s, records=%d",
            batch_id, detected.shape.value, len(records),
        )

        saved_files = self._backup(batch_id, payload, records)

        store = {"saved": False, "documentId": None, "action": "skipped", "error": None}
        try:
            if records:
                self._save_records(batch_id, records, payload, store)
            elif detected.status:
                self._save_status(batch_id, detected.status, payload, store)
        except PersistenceFailure as e:
            logger.error("Store write failed for %s: %s", batch_id, e)
            store["error"] = str(e)

        local_saved = "webhook" in saved_files
        final_status = "completed" if records else (detected.status or "processed")

        if store["saved"]:
            message = f"Processed {len(records)} records and {store['action']} the job record"
        elif local_saved:
            message = f"Processed {len(records)} records locally (store not updated)"
        else:
            message = "Delivery could not be persisted"

        return {
            "success": local_saved or store["saved"],
            "batchId": batch_id,
            "status": final_status,
            "resultCount": len(records),
            "store": store,
            "savedFiles": saved_files,
            "message": message,
            "processedAt": datetime.now(timezone.utc).isoformat(),
        }

    def _backup(self, batchId: str, payload: Any, records: list) -> Dict[str, str]:
        saved: Dict[str, str] = {}
        try:
            saved["webhook"] = os.path.basename(self.backup.write_payload(batchId, payload))
            if records:
                saved["data"] = os.path.basename(self.backup.write_records(batchId, records))
        except OSError as e:
            logger.error("Local backup failed for %s: %s", batchId, e)
        return saved

    def _save_records(
        self, batchId: str, records: list, payload: Any, store: Dict[str, Any]
    ) -> None:
        now = datetime.now(timezone.utc)
        existing = self.repo.find_by_batch_id(batchId)

        if existing:
            # Keep the category the batch was filed under; do not reclassify
            metadata = dict(existing.get("metadata") or {})
            metadata.update({
                "completedAt": now,
                "processedAt": now,
                "webhookPayload": payload,
            })

            self.repo.update_by_doc_id(
                existing["id"],
                {"status": "completed", "results": records, "metadata": metadata},
                existing["category"],
            )
            store.update(saved=True, documentId=existing["id"], action="updated")
            return

        category = classify(records)
        record = JobRecord(
            batchId=batchId,
            status="completed",
            category=category,
            results=records,
            searchParams=SearchParams(**extract_search_params(records, category)),
            metadata=JobMetadata(
                triggeredAt=now,
                completedAt=now,
                processedAt=now,
                webhookPayload=payload,
            ),
        )
        store.update(saved=True, documentId=self.repo.insert(record), action="created")

    def _save_status(
        self, batchId: str, status: str, payload: Any, store: Dict[str, Any]
    ) -> None:
        existing = self.repo.find_by_batch_id(batchId)
        if not existing:
            logger.info("Status '%s' for unknown batch %s dropped", status, batchId)
            return

        metadata = dict(existing.get("metadata") or {})
        metadata.update({
            "webhookPayload": payload,
            "lastStatusUpdate": datetime.now(timezone.utc),
        })

        self.repo.update_by_doc_id(
            existing["id"],
            {"status": status, "metadata": metadata},
            existing["category"],
        )
        store.update(saved=True, documentId=existing["id"], action="status_updated")

    # --------------------------------------------------
    # Lookup
    # --------------------------------------------------
    def get_results(self, batchId: str) -> Dict[str, Any]:
        """
        Results for ``batchId`` from the store and the local backup.
        The store wins whenever it holds any results.
        """
        try:
            local = self.backup.read_latest(batchId)
        except (OSError, ValueError) as e:
            logger.error("Could not read local backup for %s: %s", batchId, e)
            local = []

        job = None
        store_error = None
        try:
            job = self.repo.find_by_batch_id(batchId)
        except PersistenceFailure as e:
            logger.error("Store lookup failed for %s: %s", batchId, e)
            store_error = str(e)

        store_results = (job or {}).get("results") or []

        store_info = {
            "available": job is not None,
            "status": job.get("status") if job else "not_found",
            "category": job.get("category") if job else None,
            "documentId": job.get("id") if job else None,
            "resultCount": ((job or {}).get("counters") or {}).get("resultCount", 0),
            "error": store_error,
        }
        local_info = {"available": bool(local), "resultCount": len(local)}

        if not store_results and not local:
            return {
                "found": False,
                "batchId": batchId,
                "message": "No results yet. The job may still be running or may have failed.",
                "store": store_info,
                "local": local_info,
            }

        results = store_results or local
        return {
            "found": True,
            "batchId": batchId,
            "resultCount": len(results),
            "results": results,
            "source": "store" if store_results else "local",
            "store": store_info,
            "local": local_info,
        }
