# app/repos/local_backup.py
import json
import logging
import os
import re
import time
from typing import Any, List, Optional

from app.services.payload_shapes import records_only

logger = logging.getLogger(__name__)

RAW_KIND = "webhook"
DATA_KIND = "data"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_FILENAME = re.compile(r"^(webhook|data)_(.+)_(\d+)\.json$")


def safe_batch_id(batchId: str) -> str:
    return _UNSAFE.sub("-", batchId)


class LocalBackup:
    """
    Append-only, one file per delivery:
        webhook_<batchId>_<epochMillis>.json   raw payload
        data_<batchId>_<epochMillis>.json      extracted records
    """

    def __init__(self, output_dir: str):
        self.output_dir = output_dir

    # --------------------------------------------------
    # Write
    # --------------------------------------------------
    def _write(self, kind: str, batchId: str, content: Any) -> str:
        os.makedirs(self.output_dir, exist_ok=True)

        stamp = int(time.time() * 1000)
        path = self._path(kind, batchId, stamp)
        # Same batch twice in one millisecond → bump instead of overwriting
        while os.path.exists(path):
            stamp += 1
            path = self._path(kind, batchId, stamp)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(content, f, indent=2, ensure_ascii=False, default=str)

        logger.info("Backup written: %s", os.path.basename(path))
        return path

    def _path(self, kind: str, batchId: str, stamp: int) -> str:
        filename = f"{kind}_{safe_batch_id(batchId)}_{stamp}.json"
        return os.path.join(self.output_dir, filename)

    def write_payload(self, batchId: str, payload: Any) -> str:
        return self._write(RAW_KIND, batchId, payload)

    def write_records(self, batchId: str, records: List[Any]) -> str:
        return self._write(DATA_KIND, batchId, records)

    # --------------------------------------------------
    # Read
    # --------------------------------------------------
    def _files(self, batchId: Optional[str] = None) -> List[str]:
        if not os.path.isdir(self.output_dir):
            return []

        wanted = safe_batch_id(batchId) if batchId is not None else None
        matches = []
        for name in os.listdir(self.output_dir):
            m = _FILENAME.match(name)
            if not m:
                continue
            if wanted is not None and m.group(2) != wanted:
                continue
            matches.append(name)
        return sorted(matches)

    def _load(self, filename: str) -> Any:
        with open(os.path.join(self.output_dir, filename), encoding="utf-8") as f:
            return json.load(f)

    def read_latest(self, batchId: str) -> List[Any]:
        """
        Records of the newest file for ``batchId``.
        An extracted-records file always beats a raw payload file.
        """
        files = self._files(batchId)

        data_files = [f for f in files if f.startswith(f"{DATA_KIND}_")]
        if data_files:
            content = self._load(data_files[-1])
            return content if isinstance(content, list) else []

        raw_files = [f for f in files if f.startswith(f"{RAW_KIND}_")]
        if raw_files:
            return records_only(self._load(raw_files[-1]))

        return []

    def list_batch_ids(self) -> List[str]:
        seen = []
        for name in self._files():
            batch = _FILENAME.match(name).group(2)
            if batch not in seen:
                seen.append(batch)
        return seen

    def delete(self, batchId: str) -> List[str]:
        files = self._files(batchId)
        for name in files:
            os.remove(os.path.join(self.output_dir, name))

        logger.info("Deleted %d backup files for %s", len(files), batchId)
        return files
