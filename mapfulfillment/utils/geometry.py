# mapfulfillment/utils/geometry.py
"""
Geometry helpers for map configurations: route bounds, map center and
print pixel dimensions.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

from mapfulfillment.core.exceptions import EmptyRoute

logger = logging.getLogger(__name__)

# Pixel dimensions at 300 px/inch
PRINT_DIMENSIONS: Dict[str, Dict[str, Dict[str, int]]] = {
    "A4": {
        "portrait": {"width": 2480, "height": 3508},
        "landscape": {"width": 3508, "height": 2480},
    },
    "A3": {
        "portrait": {"width": 3508, "height": 4961},
        "landscape": {"width": 4961, "height": 3508},
    },
}

DEFAULT_FORMAT = "A4"
DEFAULT_ORIENTATION = "portrait"


def calculate_bounds(coordinates: Sequence[Sequence[float]]) -> Dict[str, float]:
    """
    Compute the axis-aligned bounds of ``[lng, lat]`` coordinates.

    Raises:
        EmptyRoute: If no coordinates are given
    """
    if not coordinates:
        raise EmptyRoute("Cannot calculate bounds of an empty coordinate sequence")

    lngs = [coord[0] for coord in coordinates]
    lats = [coord[1] for coord in coordinates]

    return {
        "west": min(lngs),
        "east": max(lngs),
        "south": min(lats),
        "north": max(lats),
    }


def calculate_center(bounds: Dict[str, float]) -> list:
    """Midpoint of bounds as ``[lng, lat]`` (no antimeridian handling)."""
    return [
        (bounds["west"] + bounds["east"]) / 2,
        (bounds["south"] + bounds["north"]) / 2,
    ]


def resolve_print_format(
    print_format: Optional[str],
    orientation: Optional[str],
    log: Optional[logging.Logger] = None,
) -> Tuple[str, str, Dict[str, int]]:
    """
    Resolve a (format, orientation) pair to its canonical form and pixel size.

    Format matching is case-insensitive. Unknown pairs fall back to A4
    portrait so an order is never blocked on a typo; the fallback is logged
    as a warning.

    Returns:
        Tuple of (format, orientation, {"width", "height"})
    """
    log = log or logger
    normalized_format = str(print_format or "").strip().upper()
    normalized_orientation = str(orientation or "").strip().lower()

    dims = PRINT_DIMENSIONS.get(normalized_format, {}).get(normalized_orientation)
    if dims is None:
        log.warning(
            f"Unknown print format {print_format!r}/{orientation!r}, "
            f"falling back to {DEFAULT_FORMAT} {DEFAULT_ORIENTATION}"
        )
        normalized_format = DEFAULT_FORMAT
        normalized_orientation = DEFAULT_ORIENTATION
        dims = PRINT_DIMENSIONS[DEFAULT_FORMAT][DEFAULT_ORIENTATION]

    return normalized_format, normalized_orientation, dict(dims)


def get_print_dimensions(
    print_format: Optional[str],
    orientation: Optional[str],
    log: Optional[logging.Logger] = None,
) -> Dict[str, int]:
    """
    Get pixel dimensions for a print format and orientation.

    Args:
        print_format: Print size ("A4", "A3")
        orientation: "portrait" or "landscape"
        log: Logger receiving the fallback warning

    Returns:
        Dict with "width" and "height" in pixels
    """
    _, _, dims = resolve_print_format(print_format, orientation, log)
    return dims
