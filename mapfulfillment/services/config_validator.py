# mapfulfillment/services/config_validator.py
"""
Validation of candidate map configurations.

Every configuration produced by a resolution strategy goes through
``validate_map_config`` before it is accepted. The validator never raises,
never mutates its input and performs no I/O: it only reports.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, List, Optional

from mapfulfillment.models.models import MIN_ROUTE_POINTS, ValidationResult

REQUIRED_FIELDS = ("width", "height", "center", "bounds", "style", "route")
BOUNDS_FIELDS = ("north", "south", "east", "west")
BOUNDS_TOLERANCE = 1e-9

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _check_route(route: Any, errors: List[str]) -> Optional[List[Any]]:
    """Return the route coordinates when they are well formed."""
    if not isinstance(route, Mapping):
        errors.append("route must be an object")
        return None
    coordinates = route.get("coordinates")
    if not isinstance(coordinates, list):
        errors.append("route.coordinates must be an array")
        return None
    if not coordinates:
        errors.append("route.coordinates is empty")
        return None
    if len(coordinates) < MIN_ROUTE_POINTS:
        errors.append(f"route.coordinates needs at least {MIN_ROUTE_POINTS} points")
        return None
    for index, coord in enumerate(coordinates):
        if (
            not isinstance(coord, (list, tuple))
            or len(coord) < 2
            or not (_is_number(coord[0]) and _is_number(coord[1]))
        ):
            errors.append(f"route.coordinates[{index}] must be a numeric [lng, lat] pair")
            return None
    return coordinates


def _check_center(center: Any, errors: List[str]) -> None:
    if not isinstance(center, (list, tuple)) or len(center) != 2:
        errors.append("center must be a [lng, lat] array")
        return
    lng, lat = center
    if not (_is_number(lng) and _is_number(lat)):
        errors.append("center coordinates must be numbers")
        return
    if not -180 <= lng <= 180:
        errors.append(f"center longitude out of range: {lng}")
    if not -90 <= lat <= 90:
        errors.append(f"center latitude out of range: {lat}")


def _check_bounds(bounds: Any, errors: List[str]) -> bool:
    if not isinstance(bounds, Mapping):
        errors.append("bounds must be an object")
        return False
    invalid = [key for key in BOUNDS_FIELDS if not _is_number(bounds.get(key))]
    if invalid:
        errors.append(f"bounds properties must be numbers: {', '.join(invalid)}")
        return False
    if bounds["south"] > bounds["north"]:
        errors.append("bounds south is greater than north")
        return False
    return True


def _check_route_inside_bounds(coordinates: List[Any], bounds: Mapping, errors: List[str]) -> None:
    lngs = [coord[0] for coord in coordinates]
    lats = [coord[1] for coord in coordinates]
    if (
        min(lngs) < bounds["west"] - BOUNDS_TOLERANCE
        or max(lngs) > bounds["east"] + BOUNDS_TOLERANCE
        or min(lats) < bounds["south"] - BOUNDS_TOLERANCE
        or max(lats) > bounds["north"] + BOUNDS_TOLERANCE
    ):
        errors.append("route outside bounds")


def validate_map_config(
    config: Any, log: Optional[logging.Logger] = None
) -> ValidationResult:
    """
    Check that a candidate configuration is complete and well typed.

    Args:
        config: Candidate configuration (usually a dict)
        log: Logger receiving the diagnostics

    Returns:
        ValidationResult: ``valid`` plus every missing field and invalid reason
    """
    log = log or logger

    if config is None or not isinstance(config, Mapping):
        log.warning("Configuration is null or not an object")
        return ValidationResult(valid=False, errors=["configuration is null"])

    missing = [field for field in REQUIRED_FIELDS if not config.get(field)]
    errors: List[str] = []

    try:
        coordinates = None
        if "route" not in missing:
            coordinates = _check_route(config["route"], errors)
        if "center" not in missing:
            _check_center(config["center"], errors)
        if "bounds" not in missing and _check_bounds(config["bounds"], errors) and coordinates:
            _check_route_inside_bounds(coordinates, config["bounds"], errors)
        if "style" not in missing and not isinstance(config["style"], str):
            errors.append("style must be a string")
        for field in ("width", "height"):
            if field not in missing:
                value = config[field]
                if not _is_number(value) or value <= 0:
                    errors.append(f"{field} must be a positive number")
    except Exception as e:
        errors.append(f"validation error: {e}")

    if missing:
        log.warning(f"Missing required properties: {', '.join(missing)}")
        log.debug(f"Available properties: {', '.join(map(str, config.keys()))}")
    for error in errors:
        log.warning(f"Invalid configuration: {error}")

    return ValidationResult(valid=not missing and not errors, missing=missing, errors=errors)
