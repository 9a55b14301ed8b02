# mapfulfillment/resolvers/session_storage_resolver.py
"""
Strategy B: preview configuration kept in the customer session.
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from mapfulfillment.models.models import ConfigSource, LineItemProperty, Order, get_property

from .base_resolver import BaseConfigResolver


class SessionStorageResolver(BaseConfigResolver):
    """Looks the ``Preview ID`` line item property up in a session store."""

    name = "session_storage"
    source = ConfigSource.SESSION_STORAGE

    def __init__(self, session_store, logger=None):
        super().__init__(logger)
        self.session_store = session_store

    async def _resolve(
        self, properties: List[LineItemProperty], order: Order
    ) -> Optional[Dict[str, Any]]:
        preview_id = get_property(properties, "Preview ID")
        if not preview_id:
            return None

        entry = await self.session_store.find_by_preview_id(preview_id)
        if not isinstance(entry, Mapping):
            self.logger.info(f"Preview {preview_id} not found in session storage")
            return None

        # Previews are stored bare or wrapped under "config"/"mapConfiguration"
        for key in ("mapConfiguration", "config"):
            if isinstance(entry.get(key), Mapping):
                entry = entry[key]
                break

        candidate = self.strip_provenance(dict(entry))
        if not self.is_valid(candidate):
            self.logger.warning(f"Preview {preview_id} does not hold a complete configuration")
            return None
        return candidate

    @classmethod
    def get_description(cls) -> str:
        return "Use the preview configuration stored in the customer session"
