# mapfulfillment/services/config_reconstructor.py
"""
Best-effort repair of partially complete map configurations.

A persisted configuration document may store the pieces of a map
configuration at several places depending on the storefront version that
wrote it. ``reconstruct_configuration`` fills the missing fields of a
partial configuration from the alternate locations of its raw document, or
flags that the route has to be fetched from the activity API.
"""

import copy
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional

from mapfulfillment.core.config import config
from mapfulfillment.core.exceptions import InvalidInput
from mapfulfillment.models.models import DEFAULT_ROUTE_COLOR, DEFAULT_ROUTE_WIDTH, PRINT_DPI
from mapfulfillment.utils.geometry import (
    DEFAULT_FORMAT,
    DEFAULT_ORIENTATION,
    calculate_bounds,
    calculate_center,
    resolve_print_format,
)
from mapfulfillment.utils.polyline import decode

MAPBOX_STYLE_PREFIX = "mapbox://styles/"
MAPBOX_PUBLIC_STYLE_PREFIX = "mapbox://styles/mapbox/"

# Flag set when the route can only be recovered from the activity API
NEEDS_EXTERNAL_RECONSTRUCTION = "needsExternalReconstruction"

logger = logging.getLogger(__name__)


def format_style_reference(style: str) -> str:
    """Turn a bare Mapbox style identifier into a full style URL."""
    style = str(style).strip()
    if style.startswith(MAPBOX_STYLE_PREFIX):
        return style
    return f"{MAPBOX_PUBLIC_STYLE_PREFIX}{style}"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _dig(document: Any, *keys: str) -> Any:
    current = document
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _first_present(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return None


def stored_activity_id(raw_document: Mapping) -> Optional[Any]:
    """Activity id stored alongside a configuration, if any."""
    return _first_present(
        _dig(raw_document, "mapConfiguration", "activityData", "id"),
        _dig(raw_document, "activityData", "id"),
    )


def _route_styling(raw_document: Mapping) -> Dict[str, Any]:
    map_configuration = _as_dict(raw_document.get("mapConfiguration"))
    color = _first_present(
        _dig(map_configuration, "customization", "routeColor"),
        _dig(raw_document, "settings", "routeColor"),
        map_configuration.get("routeColor"),
    )
    width = _first_present(
        _dig(map_configuration, "customization", "routeWidth"),
        _dig(raw_document, "settings", "routeThickness"),
        map_configuration.get("routeWidth"),
    )
    return {
        "color": color or DEFAULT_ROUTE_COLOR,
        "width": width or DEFAULT_ROUTE_WIDTH,
    }


def _fill_dimensions(reconstructed: Dict[str, Any], raw_document: Mapping, log) -> None:
    print_preferences = _as_dict(_dig(raw_document, "mapConfiguration", "config")) or _as_dict(
        raw_document.get("printPreferences")
    )
    print_format, orientation, dims = resolve_print_format(
        print_preferences.get("printSize") or DEFAULT_FORMAT,
        print_preferences.get("orientation") or DEFAULT_ORIENTATION,
        log,
    )
    reconstructed.update(
        width=dims["width"],
        height=dims["height"],
        format=print_format,
        orientation=orientation,
        dpi=PRINT_DPI,
    )
    log.info(f"Set dimensions from print preferences: {dims['width']}x{dims['height']}")


def _fill_style(
    reconstructed: Dict[str, Any], raw_document: Mapping, default_style: str, log
) -> None:
    style = _first_present(
        _dig(raw_document, "mapConfiguration", "config", "style"),
        _dig(raw_document, "mapPreferences", "mapStyle"),
    )
    if style:
        reconstructed["style"] = format_style_reference(style)
        log.info(f"Set map style from document: {reconstructed['style']}")
    else:
        reconstructed["style"] = format_style_reference(default_style)
        log.warning(f"No map style found, using default style {reconstructed['style']}")


def _fill_route(reconstructed: Dict[str, Any], raw_document: Mapping, log) -> None:
    map_configuration = _as_dict(raw_document.get("mapConfiguration"))
    styling = _route_styling(raw_document)

    embedded = map_configuration.get("coordinates")
    if embedded:
        reconstructed["route"] = {"coordinates": embedded, **styling}
        log.info(f"Extracted route from {len(embedded)} embedded coordinates")
        return

    activity_map = _dig(map_configuration, "activityData", "map")
    encoded = _first_present(
        _dig(activity_map, "summary_polyline"), _dig(activity_map, "polyline")
    )
    if encoded:
        try:
            coordinates = decode(encoded)
        except InvalidInput as e:
            log.warning(f"Failed to decode stored polyline: {e}")
        else:
            reconstructed["route"] = {"coordinates": coordinates, **styling}
            log.info(f"Decoded stored polyline to {len(coordinates)} coordinates")
            return

    activity_id = stored_activity_id(raw_document)
    if activity_id:
        log.info(f"No usable route geometry for activity {activity_id}, API reconstruction needed")
        reconstructed[NEEDS_EXTERNAL_RECONSTRUCTION] = True


def reconstruct_configuration(
    partial: Optional[Mapping],
    raw_document: Mapping,
    default_style: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> Optional[Dict[str, Any]]:
    """
    Fill the missing fields of ``partial`` from its raw source document.

    Args:
        partial: Partially complete configuration (not modified)
        raw_document: Full persisted document the configuration came from
        default_style: Style identifier used when the document has none
        log: Logger receiving the diagnostics

    Returns:
        The best-effort configuration (it may still fail validation, and
        carries ``needsExternalReconstruction`` when only an activity id is
        known), or None on an unexpected internal error.
    """
    log = log or logger
    default_style = default_style or config.DEFAULT_MAP_STYLE

    try:
        reconstructed: Dict[str, Any] = copy.deepcopy(dict(partial or {}))
        raw_document = _as_dict(raw_document)

        if not reconstructed.get("width") or not reconstructed.get("height"):
            _fill_dimensions(reconstructed, raw_document, log)

        if not reconstructed.get("style"):
            _fill_style(reconstructed, raw_document, default_style, log)

        if not reconstructed.get("route"):
            _fill_route(reconstructed, raw_document, log)

        coordinates = _dig(reconstructed, "route", "coordinates")
        if coordinates and (not reconstructed.get("bounds") or not reconstructed.get("center")):
            bounds = calculate_bounds(coordinates)
            if not reconstructed.get("bounds"):
                reconstructed["bounds"] = bounds
            if not reconstructed.get("center"):
                reconstructed["center"] = calculate_center(bounds)
            log.info("Calculated bounds/center from route coordinates")

        log.debug(
            "Reconstruction completed: "
            + ", ".join(
                f"{field}={'yes' if reconstructed.get(field) else 'no'}"
                for field in ("width", "height", "center", "bounds", "style", "route")
            )
        )
        return reconstructed

    except Exception:
        log.exception("Error reconstructing configuration properties")
        return None
