# mapfulfillment/managers/config_store.py
"""
Persisted map configuration storage.

Configurations saved by the storefront live as one JSON document per
configuration id, in an ``active`` folder until the order is fulfilled. The
fulfillment pipeline then moves them to ``processed`` or ``failed``; documents
are never deleted by the pipeline so the audit trail is preserved.
"""

import asyncio
import json
import logging
import os
import secrets
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from filelock import FileLock, Timeout

from mapfulfillment.core.config import config
from mapfulfillment.core.exceptions import ExternalFetchFailed, InvalidInput
from mapfulfillment.core.setup_logging import setup_default_logging

ACTIVE = "active"
PROCESSED = "processed"
FAILED = "failed"
FOLDERS = (ACTIVE, PROCESSED, FAILED)

REQUIRED_DOCUMENT_FIELDS = ("activityId", "printSize", "orientation")
VALID_PRINT_SIZES = {"A4", "A3"}
VALID_ORIENTATIONS = {"portrait", "landscape"}


class ConfigurationStore(ABC):
    """Key/value store of persisted configuration documents."""

    @abstractmethod
    async def load(self, config_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw document for ``config_id`` or None when not found."""

    @abstractmethod
    async def move_to_processed(self, config_id: str) -> bool:
        """Tag the document as processed. Returns False when it does not exist."""

    @abstractmethod
    async def move_to_failed(self, config_id: str, error: BaseException) -> bool:
        """Tag the document as failed with the error. Returns False when it does not exist."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FileConfigurationStore(ConfigurationStore):
    """
    File based configuration store with active/processed/failed folders.

    Writes are atomic (temporary file then rename) and serialized with a
    lock file so that several worker processes can share the directory.
    """

    def __init__(
        self,
        base_path: Optional[str] = None,
        lock_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the store and create its folder structure.

        Args:
            base_path: Root directory (defaults to CONFIG_STORE_DIR)
            lock_timeout: Seconds to wait for the lock file
            logger: Logger instance (defaults to the package logger)
        """
        self.base_path = Path(base_path or config.CONFIG_STORE_DIR)
        self.lock_timeout = lock_timeout or config.CONFIG_LOCK_TIMEOUT_SECONDS
        self.logger = logger or setup_default_logging()
        self._ensure_directory_structure()
        self._lock = FileLock(str(self.base_path / ".lock"), timeout=self.lock_timeout)

    def _ensure_directory_structure(self) -> None:
        try:
            for folder in FOLDERS:
                (self.base_path / folder).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OSError(
                f"Failed to create configuration store directory '{self.base_path}': {e}"
            ) from e

    @staticmethod
    def generate_configuration_id() -> str:
        """Generate a new id of the form ``config_<epoch ms>_<12 hex>``."""
        return f"config_{int(time.time() * 1000)}_{secrets.token_hex(6)}"

    @staticmethod
    def extract_timestamp_from_id(config_id: str) -> int:
        """Epoch milliseconds embedded in a generated id, 0 when absent."""
        parts = config_id.split("_")
        if len(parts) >= 3 and parts[0] == "config" and parts[1].isdigit():
            return int(parts[1])
        return 0

    def get_path(self, config_id: str, folder: str = ACTIVE) -> Path:
        """
        Get the document path of a configuration.

        Raises:
            InvalidInput: If the id is empty or contains no safe character, or the folder is unknown
        """
        if folder not in FOLDERS:
            raise InvalidInput(f"Unknown configuration folder: {folder}")
        if not config_id or not isinstance(config_id, str):
            raise InvalidInput("Configuration ID must be a non-empty string")

        # Sanitize to prevent path injection
        safe_id = "".join(c for c in config_id if c.isalnum() or c in ("-", "_"))
        if not safe_id:
            raise InvalidInput("Configuration ID contains no valid characters")

        return self.base_path / folder / f"{safe_id}.json"

    async def _run(self, func: Callable, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            with self._lock:
                yield
        except Timeout as e:
            raise ExternalFetchFailed(f"Configuration store is locked: {e}") from e

    def _read_document(self, path: Path) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            document: Dict[str, Any] = json.load(f)
        return document

    def _write_document(self, path: Path, document: Dict[str, Any]) -> None:
        temp_path = path.with_name(f".{path.name}.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)

    def _load_sync(self, config_id: str, folder: str) -> Optional[Dict[str, Any]]:
        path = self.get_path(config_id, folder)
        if not path.exists():
            self.logger.info(f"Configuration not found: {config_id} in {folder}")
            return None
        try:
            document = self._read_document(path)
        except (OSError, json.JSONDecodeError) as e:
            raise ExternalFetchFailed(f"Failed to read configuration {config_id}: {e}") from e
        self.logger.info(f"Loaded configuration: {config_id} from {folder}")
        return document

    async def load(self, config_id: str, folder: str = ACTIVE) -> Optional[Dict[str, Any]]:
        """
        Load a configuration document.

        Args:
            config_id: Configuration identifier
            folder: Lifecycle folder to read from

        Returns:
            The raw document, or None when not found

        Raises:
            ExternalFetchFailed: If the file exists but cannot be read or parsed
        """
        result: Optional[Dict[str, Any]] = await self._run(self._load_sync, config_id, folder)
        return result

    @staticmethod
    def validate_document(map_configuration: Dict[str, Any]) -> None:
        """
        Validate a storefront configuration before it is saved.

        Raises:
            InvalidInput: If a required field is missing or has an invalid value
        """
        missing = [f for f in REQUIRED_DOCUMENT_FIELDS if not map_configuration.get(f)]
        if missing:
            raise InvalidInput(f"Missing required configuration fields: {', '.join(missing)}")
        if str(map_configuration["printSize"]).upper() not in VALID_PRINT_SIZES:
            raise InvalidInput(f"Invalid print size: {map_configuration['printSize']}")
        if map_configuration["orientation"] not in VALID_ORIENTATIONS:
            raise InvalidInput(f"Invalid orientation: {map_configuration['orientation']}")

    def _save_sync(self, config_id: str, map_configuration: Dict[str, Any]) -> str:
        self.validate_document(map_configuration)
        document = {
            "id": config_id,
            "createdAt": _now_iso(),
            "status": ACTIVE,
            "mapConfiguration": map_configuration,
            "metadata": {"version": "1.0", "source": "json_file_service"},
        }
        path = self.get_path(config_id, ACTIVE)
        with self._locked():
            self._write_document(path, document)
        self.logger.info(f"Saved configuration: {config_id}")
        return config_id

    async def save_configuration(self, config_id: str, map_configuration: Dict[str, Any]) -> str:
        """Save a storefront configuration in the active folder."""
        result: str = await self._run(self._save_sync, config_id, map_configuration)
        return result

    def _move_sync(
        self,
        config_id: str,
        source: str,
        target: str,
        update: Callable[[Dict[str, Any]], None],
    ) -> bool:
        with self._locked():
            source_path = self.get_path(config_id, source)
            if not source_path.exists():
                self.logger.error(
                    f"Cannot move to {target} - configuration not found in {source}: {config_id}"
                )
                return False
            document = self._read_document(source_path)
            document["status"] = target
            update(document)
            self._write_document(self.get_path(config_id, target), document)
            source_path.unlink()
        self.logger.info(f"Moved configuration to {target}: {config_id}")
        return True

    async def move_to_processed(self, config_id: str) -> bool:
        def mark(document: Dict[str, Any]) -> None:
            document["processedAt"] = _now_iso()

        result: bool = await self._run(self._move_sync, config_id, ACTIVE, PROCESSED, mark)
        return result

    async def move_to_failed(self, config_id: str, error: BaseException) -> bool:
        def mark(document: Dict[str, Any]) -> None:
            document["failedAt"] = _now_iso()
            document["error"] = {
                "message": str(error),
                "type": type(error).__name__,
                "timestamp": _now_iso(),
            }

        result: bool = await self._run(self._move_sync, config_id, ACTIVE, FAILED, mark)
        return result

    async def recover_failed_configuration(self, config_id: str) -> bool:
        """Move a failed configuration back to the active folder for a new attempt."""

        def reset(document: Dict[str, Any]) -> None:
            document["recoveredAt"] = _now_iso()
            document.pop("error", None)
            document.pop("failedAt", None)

        result: bool = await self._run(self._move_sync, config_id, FAILED, ACTIVE, reset)
        return result

    def list_configurations(self, folder: str = ACTIVE) -> List[str]:
        """List configuration ids stored in a folder."""
        if folder not in FOLDERS:
            raise InvalidInput(f"Unknown configuration folder: {folder}")
        return sorted(p.stem for p in (self.base_path / folder).glob("*.json"))

    def get_statistics(self) -> Dict[str, int]:
        """Count configurations per lifecycle folder."""
        stats = {folder: len(self.list_configurations(folder)) for folder in FOLDERS}
        stats["total"] = sum(stats.values())
        return stats

    def cleanup_old_configurations(
        self, max_age_days: int = 7, processed_max_age_days: int = 30
    ) -> int:
        """
        Delete stale active and processed configurations.

        Age is read from the timestamp embedded in generated ids; ids
        without one are kept. Failed configurations are never cleaned.

        Returns:
            int: Number of deleted documents
        """
        now_ms = int(time.time() * 1000)
        limits = {
            ACTIVE: max_age_days * 24 * 3600 * 1000,
            PROCESSED: processed_max_age_days * 24 * 3600 * 1000,
        }
        cleaned = 0
        with self._locked():
            for folder, max_age_ms in limits.items():
                for config_id in self.list_configurations(folder):
                    created_ms = self.extract_timestamp_from_id(config_id)
                    if created_ms and now_ms - created_ms > max_age_ms:
                        self.get_path(config_id, folder).unlink(missing_ok=True)
                        cleaned += 1
        self.logger.info(f"Cleanup completed - removed {cleaned} old configurations")
        return cleaned
