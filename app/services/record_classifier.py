import logging
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

JOB_CATEGORIES = ("job_search", "indeed_jobs", "linkedin_jobs")


def _text(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    return value if isinstance(value, str) else ""


def _nested(record: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = record.get(key)
    return value if isinstance(value, dict) else {}


# --------------------------------------------------
# Predicates (checked in order, first match wins)
# --------------------------------------------------
def _is_indeed(r: Dict[str, Any]) -> bool:
    return (
        "indeed.com" in _text(r, "domain")
        or "indeed.com" in _text(r, "url")
        or "indeed.com" in _text(r, "job_url")
        or "indeed.com" in _text(r, "company_link")
        or _nested(r, "discovery_input").get("domain") == "indeed.com"
        or _nested(r, "input").get("domain") == "indeed.com"
    )


def _is_linkedin_job(r: Dict[str, Any]) -> bool:
    url = _text(r, "url")
    return (
        "linkedin.com/jobs" in url
        or "linkedin.com" in _text(r, "job_url")
        or "linkedin.com" in _text(r, "company_url")
        or bool(r.get("job_posting_id"))
        or ("linkedin.com" in url and "company" not in url)
    )


def _is_linkedin_company(r: Dict[str, Any]) -> bool:
    return (
        bool(r.get("linkedin_url"))
        or "linkedin.com/company" in _text(r, "company_url")
        or "linkedin.com/company" in _text(r, "url")
    )


def _is_generic_job(r: Dict[str, Any]) -> bool:
    return bool(r.get("job_title") or r.get("company_name") or r.get("company"))


PREDICATES: List[Tuple[str, Callable[[Dict[str, Any]], bool]]] = [
    ("indeed_jobs", _is_indeed),
    ("linkedin_jobs", _is_linkedin_job),
    ("linkedin_company", _is_linkedin_company),
    ("job_search", _is_generic_job),
]


def classify(records: List[Any]) -> str:
    """
    Guesses the upstream dataset from the FIRST record only.
    A mixed batch is classified entirely by its first entry.
    """
    if not records or not isinstance(records[0], dict):
        return "unknown"

    first = records[0]
    for category, predicate in PREDICATES:
        if predicate(first):
            logger.debug("Classified batch as %s (keys=%s)", category, list(first.keys()))
            return category

    logger.info("Could not classify batch, keys=%s", list(first.keys()))
    return "unknown"


def extract_search_params(records: List[Any], category: str) -> Dict[str, Any]:
    """
    Best-effort recovery of the trigger parameters from delivered records.
    Missing values stay None (and are stripped before any store write).
    """
    params: Dict[str, Any] = {}

    if not records:
        return params

    if category in JOB_CATEGORIES and isinstance(records[0], dict):
        first = records[0]
        discovery = _nested(first, "discovery_input")
        nested_discovery = _nested(_nested(first, "input"), "discovery_input")
        direct_input = _nested(first, "input")

        if discovery:
            source = discovery
        elif nested_discovery:
            source = nested_discovery
        else:
            source = direct_input

        if source:
            params["keyword"] = source.get("keyword_search") or source.get("keyword")
            params["location"] = source.get("location")
            params["country"] = source.get("country")
            if source is direct_input:
                params["domain"] = source.get("domain")

    if category == "linkedin_company":
        company_urls = [
            item.get("linkedin_url") or item.get("company_url") or item.get("url")
            for item in records
            if isinstance(item, dict)
        ]
        company_urls = [url for url in company_urls if url]
        if company_urls:
            params["companyUrls"] = company_urls

    return params
