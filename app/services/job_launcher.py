# app/services/job_launcher.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.errors import PersistenceFailure
from app.repos.firestore_repo import JobRepo
from app.schemas.job import JobMetadata, JobRecord, SearchParams
from app.services.brightdata_client import BrightDataClient

logger = logging.getLogger(__name__)


def _save_placeholder(
    repo: JobRepo,
    *,
    batchId: str,
    category: str,
    searchParams: Dict[str, Any],
) -> Optional[str]:
    """
    Writes the 'triggered' record the webhook will later complete.
    A store failure does not fail the trigger: the id is still returned.
    """
    record = JobRecord(
        batchId=batchId,
        status="triggered",
        category=category,
        results=[],
        searchParams=SearchParams(**searchParams),
        metadata=JobMetadata(
            triggeredAt=datetime.now(timezone.utc),
        ),
    )

    try:
        return repo.insert(record)
    except PersistenceFailure as e:
        logger.error("Failed to save placeholder for %s: %s", batchId, e)
        return None


def launch_job_search(
    *,
    client: BrightDataClient,
    repo: JobRepo,
    keyword: str,
    location: str,
    country: str,
) -> Dict[str, Any]:
    search = {"keyword": keyword, "location": location, "country": country}

    batch_id = client.trigger([search])
    doc_id = _save_placeholder(
        repo, batchId=batch_id, category="job_search", searchParams=search
    )

    return {
        "batchId": batch_id,
        "documentId": doc_id,
        "status": "triggered",
        "message": "Job triggered. Results will be delivered via webhook.",
        "inputs": [search],
    }


def launch_company_lookup(
    *,
    client: BrightDataClient,
    repo: JobRepo,
    companyUrls: list,
) -> Dict[str, Any]:
    batch_id = client.trigger_company_lookup(companyUrls)
    doc_id = _save_placeholder(
        repo,
        batchId=batch_id,
        category="linkedin_company",
        searchParams={"companyUrls": companyUrls},
    )

    return {
        "batchId": batch_id,
        "documentId": doc_id,
        "status": "triggered",
        "message": "Company lookup triggered. Results will be delivered via webhook.",
        "companyUrls": companyUrls,
    }


def launch_both_platforms(
    *,
    client: BrightDataClient,
    repo: JobRepo,
    keyword: str,
    location: str,
    country: str,
) -> Dict[str, Any]:
    search = {"keyword": keyword, "location": location, "country": country}

    batch_ids = client.trigger_both_platforms(search)

    platforms = {}
    for platform, category in (("linkedin", "linkedin_jobs"), ("indeed", "indeed_jobs")):
        params = dict(search)
        if platform == "indeed":
            params["domain"] = "indeed.com"
        platforms[platform] = {
            "batchId": batch_ids[platform],
            "documentId": _save_placeholder(
                repo,
                batchId=batch_ids[platform],
                category=category,
                searchParams=params,
            ),
        }

    return {
        "status": "triggered",
        "platforms": platforms,
        "message": "LinkedIn and Indeed jobs triggered. Results will be delivered via webhook.",
        "inputs": [search],
    }
