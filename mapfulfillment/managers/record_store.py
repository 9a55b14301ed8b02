# mapfulfillment/managers/record_store.py
"""
Audit records of generated order maps.
One write-once JSON document per (order, line item).
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from mapfulfillment.core.config import config
from mapfulfillment.core.setup_logging import setup_default_logging
from mapfulfillment.models.models import GenerationRecord


class AuditSink(ABC):
    """Destination of generation records."""

    @abstractmethod
    async def write_record(self, record: GenerationRecord) -> None:
        """Persist a record. Implementations may raise; callers treat this as best-effort."""


def _safe_key(value) -> str:
    return "".join(c for c in str(value) if c.isalnum() or c in ("-", "_")) or "unknown"


class JsonRecordSink(AuditSink):
    """Writes records as ``order_<orderId>_<lineItemId>.json`` files."""

    def __init__(self, base_path: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self.base_path = Path(base_path or config.GENERATION_RECORDS_DIR)
        self.logger = logger or setup_default_logging()

    def get_path(self, order_id, line_item_id) -> Path:
        return self.base_path / f"order_{_safe_key(order_id)}_{_safe_key(line_item_id)}.json"

    def _write_sync(self, record: GenerationRecord) -> Path:
        self.base_path.mkdir(parents=True, exist_ok=True)
        path = self.get_path(record.order_id, record.line_item_id)
        payload = record.model_dump(mode="json", by_alias=True)
        # "x" mode: records are write-once
        with open(path, "x", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        return path

    async def write_record(self, record: GenerationRecord) -> None:
        loop = asyncio.get_running_loop()
        path = await loop.run_in_executor(None, self._write_sync, record)
        self.logger.info(f"Generation record stored: {path}")
