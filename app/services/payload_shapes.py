"""
Webhook payload shape detection.

BrightData delivers results in several loosely specified shapes. Each known
shape has a decoder; decoders are tried in a fixed priority order and the
first one that accepts the payload wins. The order is part of the contract:
an object carrying both ``data`` and ``results`` is a WRAPPED payload.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

# First non-empty wins
ID_FIELDS = ("snapshot_id", "snapshot", "id", "snapshotId")

# Fields that make a bare object look like one scraped record
RECORD_FIELDS = ("job_title", "company", "job_url")


class PayloadShape(str, Enum):
    ARRAY = "array"
    WRAPPED = "wrapped"
    SINGLE_RECORD = "single_record"
    RESULTS = "results"
    STATUS_ONLY = "status_only"
    UNKNOWN = "unknown"


@dataclass
class DetectedPayload:
    shape: PayloadShape
    records: List[Any] = field(default_factory=list)
    batchId: Optional[str] = None
    status: Optional[str] = None


def extract_batch_id(source: Any) -> Optional[str]:
    """
    Returns the first non-empty identifier field of ``source``,
    checked in ID_FIELDS order.
    """
    if not isinstance(source, dict):
        return None

    for key in ID_FIELDS:
        value = source.get(key)
        if value not in (None, ""):
            return str(value)

    return None


def _now_ms() -> int:
    return int(time.time() * 1000)


def _status_of(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and payload.get("status"):
        return str(payload["status"])
    return None


# --------------------------------------------------
# Decoders (priority order below)
# --------------------------------------------------
def _decode_array(payload: Any) -> Optional[DetectedPayload]:
    if not isinstance(payload, list):
        return None

    if not payload:
        return DetectedPayload(PayloadShape.ARRAY)

    first = payload[0]
    batch_id = extract_batch_id(
        first.get("input") if isinstance(first, dict) else None
    ) or extract_batch_id(first)

    if not batch_id:
        posting_id = first.get("job_posting_id") if isinstance(first, dict) else None
        batch_id = f"job_{posting_id or _now_ms()}"

    return DetectedPayload(PayloadShape.ARRAY, list(payload), batch_id)


def _decode_wrapped(payload: Any) -> Optional[DetectedPayload]:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        return None

    return DetectedPayload(
        PayloadShape.WRAPPED,
        list(payload["data"]),
        extract_batch_id(payload),
        _status_of(payload),
    )


def _decode_single_record(payload: Any) -> Optional[DetectedPayload]:
    if not isinstance(payload, dict):
        return None
    if not any(payload.get(key) for key in RECORD_FIELDS):
        return None

    return DetectedPayload(
        PayloadShape.SINGLE_RECORD,
        [payload],
        extract_batch_id(payload) or f"single_{_now_ms()}",
        _status_of(payload),
    )


def _decode_results(payload: Any) -> Optional[DetectedPayload]:
    if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
        return None

    return DetectedPayload(
        PayloadShape.RESULTS,
        list(payload["results"]),
        extract_batch_id(payload),
        _status_of(payload),
    )


def _decode_status_only(payload: Any) -> Optional[DetectedPayload]:
    if not isinstance(payload, dict) or not payload.get("status"):
        return None
    if not (payload.get("snapshot_id") or payload.get("id")):
        return None

    return DetectedPayload(
        PayloadShape.STATUS_ONLY,
        [],
        extract_batch_id(payload),
        _status_of(payload),
    )


DECODERS: List[Callable[[Any], Optional[DetectedPayload]]] = [
    _decode_array,
    _decode_wrapped,
    _decode_single_record,
    _decode_results,
    _decode_status_only,
]


def detect(payload: Any) -> DetectedPayload:
    """
    Classifies ``payload`` and extracts its records plus batch id.

    Never raises: an unmatched payload comes back as UNKNOWN with no
    records and no batch id, and the caller decides what that means.
    """
    for decoder in DECODERS:
        detected = decoder(payload)
        if detected is not None:
            return detected

    return DetectedPayload(PayloadShape.UNKNOWN)


def describe_keys(payload: Any) -> List[str]:
    """Top-level keys, for error messages."""
    if isinstance(payload, dict):
        return list(payload.keys())
    return []


def records_only(payload: Any) -> List[Any]:
    return detect(payload).records
