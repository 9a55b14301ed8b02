# mapfulfillment/managers/session_store.py
"""
Access to preview configurations kept in short-lived customer sessions.

Session data normally lives in the storefront web process and is not
reachable from the fulfillment context, so the default store reports every
lookup as not found. ``InMemorySessionStore`` is used when previews are
registered in the same process (and in tests).
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from mapfulfillment.core.setup_logging import setup_default_logging


class SessionStore(ABC):
    """Lookup of preview configurations by preview id."""

    @abstractmethod
    async def find_by_preview_id(self, preview_id: str) -> Optional[Dict[str, Any]]:
        """Return the preview configuration or None when not found."""


class UnavailableSessionStore(SessionStore):
    """Session store used when no session backend is reachable."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or setup_default_logging()

    async def find_by_preview_id(self, preview_id: str) -> Optional[Dict[str, Any]]:
        self.logger.warning(
            f"Session store access not available in this context (preview {preview_id})"
        )
        return None


class InMemorySessionStore(SessionStore):
    """
    Process-local preview store with per-entry expiry.

    Args:
        ttl_seconds: Lifetime of a stored preview
    """

    def __init__(self, ttl_seconds: float = 3600.0):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def put(self, preview_id: str, preview_config: Dict[str, Any]) -> None:
        self._entries[preview_id] = (time.monotonic() + self.ttl_seconds, preview_config)

    async def find_by_preview_id(self, preview_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(preview_id)
        if entry is None:
            return None
        expires_at, preview_config = entry
        if time.monotonic() >= expires_at:
            del self._entries[preview_id]
            return None
        return preview_config
