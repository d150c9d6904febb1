import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from app.config import API_PREFIX, DEFAULT_COUNTRY, DEFAULT_KEYWORD, DEFAULT_LOCATION
from app.dependencies import get_backup, get_brightdata, get_receiver, get_repo
from app.errors import PersistenceFailure
from app.repos.firestore_repo import CATEGORY_COLLECTIONS, JobRepo
from app.repos.local_backup import LocalBackup
from app.schemas.job import JobMetadata, JobRecord
from app.schemas.trigger import SnapshotSaveRequest, TriggerRequest
from app.services import job_launcher
from app.services.brightdata_client import BrightDataClient
from app.services.webhook_receiver import WebhookReceiver

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_PREFIX)

SOURCES = ("local", "store", "both")


def _check_category(category: Optional[str]) -> None:
    if category and category not in CATEGORY_COLLECTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown category. Expected one of: {', '.join(CATEGORY_COLLECTIONS)}"
        )


def _check_source(source: str) -> None:
    if source not in SOURCES:
        raise HTTPException(
            status_code=400,
            detail=f"source must be one of: {', '.join(SOURCES)}"
        )


# --------------------------------------------------
# Trigger a BrightData job
# --------------------------------------------------
@router.post("/trigger")
def trigger(
    req: TriggerRequest,
    client: BrightDataClient = Depends(get_brightdata),
    repo: JobRepo = Depends(get_repo),
):
    if not client.configured():
        raise HTTPException(
            status_code=503,
            detail="BrightData credentials not configured"
        )

    trigger_type = req.trigger_type()
    logger.info("Trigger request: %s", trigger_type)

    if trigger_type == "linkedin_companies":
        if not req.companyUrls:
            raise HTTPException(
                status_code=400,
                detail="companyUrls must be a non-empty array"
            )
        result = job_launcher.launch_company_lookup(
            client=client, repo=repo, companyUrls=req.companyUrls
        )
        return {"success": True, **result}

    search = {
        "keyword": req.keyword or DEFAULT_KEYWORD,
        "location": req.location or DEFAULT_LOCATION,
        "country": req.country or DEFAULT_COUNTRY,
    }

    if trigger_type == "both_platforms":
        result = job_launcher.launch_both_platforms(client=client, repo=repo, **search)
    else:
        result = job_launcher.launch_job_search(client=client, repo=repo, **search)

    return {"success": True, **result}


# --------------------------------------------------
# Webhook delivery (BrightData → us)
# --------------------------------------------------
@router.post("/webhook")
def webhook(
    request: Request,
    payload: Any = Body(None),
    receiver: WebhookReceiver = Depends(get_receiver),
):
    receiver.authorize(request.headers, request.query_params)
    return receiver.receive(payload)


@router.get("/webhook")
def webhook_results(
    batchId: str = Query(..., min_length=1),
    receiver: WebhookReceiver = Depends(get_receiver),
):
    return {"success": True, **receiver.get_results(batchId)}


# --------------------------------------------------
# Job records (CRUD)
# --------------------------------------------------
@router.get("/jobs")
def list_jobs(
    batchId: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    repo: JobRepo = Depends(get_repo),
):
    if action == "stats":
        return {"success": True, "stats": repo.stats()}

    if batchId:
        job = repo.find_by_batch_id(batchId)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return {"success": True, "job": job}

    _check_category(category)

    if status:
        jobs = repo.list_by_status(status, limit)
    elif category:
        jobs = repo.list_by_category(category, limit)
    else:
        jobs = repo.list_all(limit)

    return {"success": True, "jobs": jobs, "count": len(jobs), "limit": limit}


@router.put("/jobs")
def update_job(
    id: str = Query(..., min_length=1),
    category: Optional[str] = None,
    updates: dict = Body(...),
    repo: JobRepo = Depends(get_repo),
):
    _check_category(category)

    if "category" in updates:
        raise HTTPException(
            status_code=400,
            detail="category cannot be changed; it is fixed by the job's collection"
        )

    job = repo.get_by_doc_id(id, category)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    repo.update_by_doc_id(id, updates, job["category"])
    return {"success": True, "message": "Job updated", "jobId": id}


@router.delete("/jobs")
def delete_job(
    id: str = Query(..., min_length=1),
    category: Optional[str] = None,
    repo: JobRepo = Depends(get_repo),
):
    _check_category(category)

    if not repo.delete_by_doc_id(id, category):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"success": True, "message": "Job deleted", "jobId": id}


@router.post("/jobs/repair")
def repair_jobs(repo: JobRepo = Depends(get_repo)):
    fixed = repo.repair_result_counts()
    return {"success": True, "fixed": fixed}


# --------------------------------------------------
# Snapshots (local backup + store, by batch id)
# --------------------------------------------------
@router.get("/snapshots")
def list_snapshots(
    source: str = "both",
    repo: JobRepo = Depends(get_repo),
    backup: LocalBackup = Depends(get_backup),
):
    _check_source(source)
    snapshots = {}

    if source in ("local", "both"):
        snapshots["local"] = backup.list_batch_ids()

    if source in ("store", "both"):
        try:
            snapshots["store"] = [job["batchId"] for job in repo.list_all(100)]
        except PersistenceFailure as e:
            logger.error("Could not list store snapshots: %s", e)
            snapshots["store"] = []
            snapshots["storeError"] = str(e)

    local = snapshots.get("local", [])
    stored = snapshots.get("store", [])
    return {
        "success": True,
        "snapshots": snapshots,
        "counts": {
            "local": len(local),
            "store": len(stored),
            "total": len(set(local) | set(stored)),
        },
    }


@router.post("/snapshots")
def save_snapshot(
    req: SnapshotSaveRequest,
    repo: JobRepo = Depends(get_repo),
    backup: LocalBackup = Depends(get_backup),
):
    path = backup.write_payload(req.batchId, req.data)

    results = req.data.get("data")
    results = results if isinstance(results, list) else []

    doc_id = None
    store_error = None
    if req.saveToStore:
        record = JobRecord(
            batchId=req.batchId,
            status=req.data.get("status") or "manual",
            category="manual",
            results=results,
            metadata=JobMetadata(webhookPayload=req.data),
        )
        try:
            doc_id = repo.insert(record)
        except PersistenceFailure as e:
            logger.error("Manual save to store failed for %s: %s", req.batchId, e)
            store_error = str(e)

    return {
        "success": True,
        "batchId": req.batchId,
        "resultCount": len(results),
        "local": {"saved": True, "filePath": path},
        "store": {"saved": doc_id is not None, "documentId": doc_id, "error": store_error},
    }


@router.delete("/snapshots/{batchId}")
def delete_snapshot(
    batchId: str,
    source: str = "both",
    repo: JobRepo = Depends(get_repo),
    backup: LocalBackup = Depends(get_backup),
):
    _check_source(source)
    result = {"success": True, "batchId": batchId}

    if source in ("local", "both"):
        files = backup.delete(batchId)
        result["local"] = {"deleted": len(files), "files": files}

    if source in ("store", "both"):
        try:
            job = repo.find_by_batch_id(batchId)
            if job:
                deleted = repo.delete_by_doc_id(job["id"], job["category"])
                result["store"] = {"deleted": deleted, "documentId": job["id"]}
            else:
                result["store"] = {"deleted": False, "reason": "Job not found"}
        except PersistenceFailure as e:
            result["store"] = {"deleted": False, "error": str(e)}

    return result
