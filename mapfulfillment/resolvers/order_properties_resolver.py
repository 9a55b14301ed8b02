# mapfulfillment/resolvers/order_properties_resolver.py
"""
Strategy A: configuration referenced by the line item properties.

Tried in order:
    1. ``Configuration ID``: persisted configuration document, used as is
       when complete, repaired from the rest of the document otherwise, and
       rebuilt from the stored activity data as a last resort.
    2. ``Map Config``: legacy base64 encoded JSON configuration.
"""

import base64
import binascii
import copy
import json
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from mapfulfillment.core.exceptions import MapFulfillmentError
from mapfulfillment.core.setup_logging import log_context
from mapfulfillment.models.models import (
    PRINT_DPI,
    ConfigSource,
    LineItemProperty,
    Order,
    get_property,
)
from mapfulfillment.services.config_reconstructor import (
    NEEDS_EXTERNAL_RECONSTRUCTION,
    reconstruct_configuration,
    stored_activity_id,
)
from mapfulfillment.utils.geometry import DEFAULT_FORMAT, DEFAULT_ORIENTATION, resolve_print_format

from .base_resolver import BaseConfigResolver
from .strava_api_resolver import StravaApiResolver


class OrderPropertiesResolver(BaseConfigResolver):
    """
    Resolver for configurations referenced by the order itself.

    Args:
        config_store: ConfigurationStore holding persisted configuration documents
        strava_resolver: Strategy used to convert stored activity data
        default_style: Style used when a stored document has none
        logger: Logger instance
    """

    name = "order_properties"
    source = ConfigSource.ORDER_PROPERTIES

    def __init__(
        self,
        config_store,
        strava_resolver: StravaApiResolver,
        default_style: Optional[str] = None,
        logger=None,
    ):
        super().__init__(logger)
        self.config_store = config_store
        self.strava_resolver = strava_resolver
        self.default_style = default_style

    async def _resolve(
        self, properties: List[LineItemProperty], order: Order
    ) -> Optional[Dict[str, Any]]:
        config_id = get_property(properties, "Configuration ID")
        if config_id:
            try:
                candidate = await self._resolve_from_store(config_id, properties)
            except MapFulfillmentError as e:
                self.logger.warning(
                    f"Configuration {config_id} could not be used: {e}",
                    extra=log_context(order, config_id=config_id, strategy=self.name),
                )
                candidate = None
            if candidate is not None:
                return candidate

        legacy = get_property(properties, "Map Config")
        if legacy:
            return self._resolve_legacy(legacy)

        self.logger.info(f"No configuration reference in properties of order {order.id}")
        return None

    def _extract_candidate(self, document: Mapping, config_id: str) -> Dict[str, Any]:
        """
        Pull the map configuration out of a stored document.

        The configuration may be nested one level deeper under a second
        ``mapConfiguration`` key. Pixel dimensions are always recomputed from
        the stored print format and orientation.
        """
        outer = document.get("mapConfiguration")
        outer = outer if isinstance(outer, Mapping) else {}
        inner = outer.get("mapConfiguration")
        inner = inner if isinstance(inner, Mapping) else {}

        candidate: Dict[str, Any] = self.strip_provenance(copy.deepcopy(dict(inner or outer)))

        print_format, orientation, dims = resolve_print_format(
            candidate.get("printSize")
            or candidate.get("format")
            or outer.get("printSize")
            or document.get("printSize")
            or DEFAULT_FORMAT,
            candidate.get("orientation")
            or outer.get("orientation")
            or document.get("orientation")
            or DEFAULT_ORIENTATION,
            self.logger,
        )

        stored_dims = (
            candidate.get("dimensions") or outer.get("dimensions") or document.get("dimensions")
        )
        if isinstance(stored_dims, Mapping) and (
            stored_dims.get("width"),
            stored_dims.get("height"),
        ) != (dims["width"], dims["height"]):
            self.logger.info(
                f"Configuration {config_id}: stored dimensions "
                f"{stored_dims.get('width')}x{stored_dims.get('height')} replaced by "
                f"{print_format} {orientation} {dims['width']}x{dims['height']}"
            )

        candidate.update(
            width=dims["width"],
            height=dims["height"],
            format=print_format,
            orientation=orientation,
            dpi=PRINT_DPI,
        )
        return candidate

    async def _resolve_from_store(
        self, config_id: str, properties: List[LineItemProperty]
    ) -> Optional[Dict[str, Any]]:
        document = await self.config_store.load(config_id)
        if not document:
            self.logger.warning(f"Configuration {config_id} not found in active configurations")
            return None

        candidate = self._extract_candidate(document, config_id)
        if self.is_valid(candidate):
            self.logger.info(f"Using stored configuration {config_id}")
            return {**candidate, "source": ConfigSource.JSON_FILE.value, "configId": config_id}

        self.logger.info(f"Stored configuration {config_id} is incomplete, reconstructing")
        reconstructed = reconstruct_configuration(
            candidate, document, self.default_style, self.logger
        )
        if reconstructed is None:
            return None

        if self.is_valid(reconstructed):
            self.logger.info(f"Reconstructed configuration {config_id} from stored document")
            reconstructed.pop(NEEDS_EXTERNAL_RECONSTRUCTION, None)
            return {
                **reconstructed,
                "source": ConfigSource.JSON_FILE_RECONSTRUCTED.value,
                "configId": config_id,
            }

        if reconstructed.get(NEEDS_EXTERNAL_RECONSTRUCTION):
            rebuilt = await self._resolve_from_stored_activity(document, properties)
            if rebuilt is not None and self.is_valid(rebuilt):
                self.logger.info(f"Rebuilt configuration {config_id} from stored activity data")
                return {
                    **rebuilt,
                    "source": ConfigSource.STRAVA_FROM_STORED_DATA.value,
                    "configId": config_id,
                }

        self.logger.warning(f"Configuration {config_id} could not be completed")
        return None

    async def _resolve_from_stored_activity(
        self, document: Mapping, properties: List[LineItemProperty]
    ) -> Optional[Dict[str, Any]]:
        """
        Convert the activity stored with a configuration document.

        The stored payload is used directly when it already holds a track,
        otherwise the activity is fetched again by its stored id.
        """
        activity_id = stored_activity_id(document)
        if not activity_id:
            return None

        map_configuration = document.get("mapConfiguration")
        stored = document.get("activityData")
        if not isinstance(stored, Mapping) and isinstance(map_configuration, Mapping):
            stored = map_configuration.get("activityData")

        activity_api = self.strava_resolver.activity_api
        if not activity_api.validate_activity_for_rendering(stored)["valid"]:
            owner_hint = get_property(properties, "Strava User ID") or document.get("stravaUserId")
            self.logger.info(f"Fetching activity {activity_id} referenced by stored configuration")
            stored = await activity_api.get_activity(activity_id, owner_hint)

        return self.strava_resolver.build_config_from_activity(
            stored, self._with_stored_preferences(properties, document)
        )

    @staticmethod
    def _with_stored_preferences(
        properties: List[LineItemProperty], document: Mapping
    ) -> List[LineItemProperty]:
        """Order properties completed with the print choices saved in the document."""
        outer = document.get("mapConfiguration")
        outer = outer if isinstance(outer, Mapping) else {}
        stored = {
            "Print Size": outer.get("printSize") or document.get("printSize"),
            "Orientation": outer.get("orientation") or document.get("orientation"),
        }
        merged = list(properties)
        for name, value in stored.items():
            if value and get_property(properties, name) is None:
                merged.append(LineItemProperty(name=name, value=value))
        return merged

    def _resolve_legacy(self, encoded: str) -> Optional[Dict[str, Any]]:
        try:
            candidate = json.loads(base64.b64decode(encoded, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            self.logger.warning(f"Failed to decode legacy Map Config property: {e}")
            return None

        if not isinstance(candidate, Mapping):
            self.logger.warning("Legacy Map Config property is not a JSON object")
            return None

        candidate = self.strip_provenance(dict(candidate))
        if not self.is_valid(candidate):
            self.logger.warning("Legacy Map Config property is not a complete configuration")
            return None

        self.logger.info("Using legacy base64 Map Config property")
        return {**candidate, "source": ConfigSource.BASE64_LEGACY.value}

    @classmethod
    def get_description(cls) -> str:
        return "Use the configuration referenced by the line item properties"
