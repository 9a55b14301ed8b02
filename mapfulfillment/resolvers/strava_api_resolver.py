# mapfulfillment/resolvers/strava_api_resolver.py
"""
Strategy C: rebuild the map configuration from the Strava activity itself.

Used when neither a persisted configuration nor a session preview is
available. The activity is fetched with the ``Activity ID`` line item
property and combined with the print and styling properties of the order.
"""

import secrets
import time
from typing import Any, Dict, List, Optional

from mapfulfillment.core.config import config
from mapfulfillment.core.exceptions import ConfigurationInvalid
from mapfulfillment.models.models import (
    PRINT_DPI,
    ConfigSource,
    LineItemProperty,
    Order,
    get_property,
)
from mapfulfillment.services.config_reconstructor import format_style_reference
from mapfulfillment.utils.geometry import (
    DEFAULT_FORMAT,
    DEFAULT_ORIENTATION,
    calculate_bounds,
    calculate_center,
    resolve_print_format,
)

from .base_resolver import BaseConfigResolver


def generate_order_config_id() -> str:
    """Identifier of a configuration built at order time (not persisted)."""
    return f"order_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _route_width(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        width = float(value)
    except ValueError:
        return default
    return width if width > 0 else default


class StravaApiResolver(BaseConfigResolver):
    """
    Resolver fetching the activity from the Strava API.

    Args:
        activity_api: Client exposing ``get_activity``,
            ``validate_activity_for_rendering`` and ``normalize_activity``
            (see StravaService)
        logger: Logger instance
    """

    name = "strava_api"
    source = ConfigSource.STRAVA_API_RECONSTRUCTION

    def __init__(self, activity_api, logger=None):
        super().__init__(logger)
        self.activity_api = activity_api

    async def _resolve(
        self, properties: List[LineItemProperty], order: Order
    ) -> Optional[Dict[str, Any]]:
        activity_id = get_property(properties, "Activity ID")
        if not activity_id:
            self.logger.info(f"No Activity ID on order {order.id}, skipping Strava reconstruction")
            return None

        owner_hint = get_property(properties, "Strava User ID")
        self.logger.info(f"Fetching activity {activity_id} for order {order.id}")
        activity = await self.activity_api.get_activity(activity_id, owner_hint)

        candidate = self.build_config_from_activity(activity, properties)
        if not self.is_valid(candidate):
            return None
        return candidate

    def build_config_from_activity(
        self, activity: Dict[str, Any], properties: List[LineItemProperty]
    ) -> Dict[str, Any]:
        """
        Convert an activity payload plus order properties into a configuration.

        Args:
            activity: Strava activity payload (fetched or previously stored)
            properties: Line item properties carrying print and styling choices

        Returns:
            Candidate configuration (source not set)

        Raises:
            ConfigurationInvalid: If the activity has no renderable track
        """
        validation = self.activity_api.validate_activity_for_rendering(activity)
        if not validation["valid"]:
            raise ConfigurationInvalid(
                f"Invalid activity data: {validation['reason']}", errors=[validation["reason"]]
            )

        normalized = self.activity_api.normalize_activity(activity)
        coordinates = normalized["coordinates"]

        print_format, orientation, dims = resolve_print_format(
            get_property(properties, "Print Size") or DEFAULT_FORMAT,
            get_property(properties, "Orientation") or DEFAULT_ORIENTATION,
            self.logger,
        )
        style = get_property(properties, "Map Style") or config.DEFAULT_MAP_STYLE
        bounds = calculate_bounds(coordinates)

        candidate = {
            "id": generate_order_config_id(),
            "width": dims["width"],
            "height": dims["height"],
            "format": print_format,
            "orientation": orientation,
            "dpi": PRINT_DPI,
            "center": calculate_center(bounds),
            "bounds": bounds,
            "style": format_style_reference(style),
            "route": {
                "coordinates": coordinates,
                "color": get_property(properties, "Route Color") or config.DEFAULT_ROUTE_COLOR,
                "width": _route_width(
                    get_property(properties, "Route Width"), config.DEFAULT_ROUTE_WIDTH
                ),
            },
            "markers": {"start": coordinates[0], "end": coordinates[-1]},
            "title": normalized.get("name") or "My Activity",
            "activityId": normalized.get("id"),
            "originalActivity": {
                key: normalized.get(key)
                for key in ("id", "name", "type", "distance", "movingTime", "elevationGain")
            },
            "reconstructed": True,
        }
        self.logger.info(
            f"Built configuration from activity {normalized.get('id')}: "
            f"{len(coordinates)} points, {print_format} {orientation}"
        )
        return candidate

    @classmethod
    def get_description(cls) -> str:
        return "Rebuild the configuration from the Strava activity API"
