# mapfulfillment/utils/polyline.py
"""
Encoded polyline codec (Google polyline algorithm, precision 1e5).

Strava stores activity tracks as encoded polylines in ``map.polyline`` and
``map.summary_polyline``. The encoding stores latitude before longitude; every
function in this module exchanges coordinates in GeoJSON order ``[lng, lat]``.
"""

import math
from typing import List, Sequence, Tuple

from mapfulfillment.core.exceptions import InvalidInput

PRECISION = 1e5
_OFFSET = 63
_CHUNK_MASK = 0x1F
_CONTINUATION_BIT = 0x20


def _decode_value(polyline: str, index: int) -> Tuple[int, int]:
    """Decode one signed delta starting at ``index``; returns (delta, next_index)."""
    result = 0
    shift = 0
    length = len(polyline)

    while True:
        if index >= length:
            raise InvalidInput(
                f"Truncated polyline: stream ends inside a value at position {index}"
            )
        chunk = ord(polyline[index]) - _OFFSET
        if chunk < 0 or chunk > 63:
            raise InvalidInput(
                f"Invalid polyline character {polyline[index]!r} at position {index}"
            )
        index += 1
        result |= (chunk & _CHUNK_MASK) << shift
        shift += 5
        if chunk < _CONTINUATION_BIT:
            break

    delta = ~(result >> 1) if result & 1 else result >> 1
    return delta, index


def decode(polyline: str) -> List[List[float]]:
    """
    Decode an encoded polyline into ``[lng, lat]`` coordinates.

    Args:
        polyline: Encoded polyline string

    Returns:
        List of [lng, lat] pairs in GeoJSON axis order

    Raises:
        InvalidInput: If the argument is not a non-empty string or the stream is malformed
    """
    if not isinstance(polyline, str) or not polyline:
        raise InvalidInput("Invalid polyline string")

    coordinates: List[List[float]] = []
    index = 0
    lat = 0
    lng = 0
    length = len(polyline)

    while index < length:
        delta_lat, index = _decode_value(polyline, index)
        if index >= length:
            raise InvalidInput("Truncated polyline: latitude without matching longitude")
        delta_lng, index = _decode_value(polyline, index)

        lat += delta_lat
        lng += delta_lng
        # Encoded as lat/lng, emitted as lng/lat
        coordinates.append([lng / PRECISION, lat / PRECISION])

    return coordinates


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) * PRECISION + 0.5), value))


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= _CONTINUATION_BIT:
        chunks.append(chr((_CONTINUATION_BIT | (value & _CHUNK_MASK)) + _OFFSET))
        value >>= 5
    chunks.append(chr(value + _OFFSET))
    return "".join(chunks)


def encode(coordinates: Sequence[Sequence[float]]) -> str:
    """
    Encode ``[lng, lat]`` coordinates into a polyline string.

    Args:
        coordinates: Sequence of [lng, lat] pairs

    Returns:
        str: Encoded polyline
    """
    parts = []
    prev_lat = 0
    prev_lng = 0
    for coord in coordinates:
        lat = _round_half_away(coord[1])
        lng = _round_half_away(coord[0])
        parts.append(_encode_value(lat - prev_lat))
        parts.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(parts)
