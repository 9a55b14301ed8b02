# mapfulfillment/services/strava_service.py
"""
Strava API client used to re-derive map configurations at fulfillment time.

Fetches activity details and GPS streams, checks that an activity payload
holds a renderable track and normalizes it to GeoJSON coordinates plus the
metadata printed on the poster.
"""

import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from mapfulfillment.__version__ import __version__
from mapfulfillment.core.config import config
from mapfulfillment.core.exceptions import ExternalFetchFailed, InvalidInput
from mapfulfillment.core.setup_logging import setup_default_logging
from mapfulfillment.models.models import MIN_ROUTE_POINTS
from mapfulfillment.utils.polyline import decode

TokenProvider = Callable[[Optional[str]], Awaitable[Optional[str]]]


def _stream_coordinates(streams: Any) -> List[List[float]]:
    """Extract [lng, lat] pairs from a ``latlng`` stream (keyed or list form)."""
    data = None
    if isinstance(streams, Mapping):
        data = (streams.get("latlng") or {}).get("data")
    elif isinstance(streams, list):
        for stream in streams:
            if isinstance(stream, Mapping) and stream.get("type") == "latlng":
                data = stream.get("data")
                break
    if not data:
        return []
    # Strava streams are [lat, lng]
    return [[float(point[1]), float(point[0])] for point in data]


def extract_coordinates(payload: Mapping) -> List[List[float]]:
    """
    Route coordinates of an activity payload in [lng, lat] order.

    The GPS stream is preferred, then the full polyline, then the summary polyline.

    Raises:
        InvalidInput: If the stored polyline is malformed
    """
    coordinates = _stream_coordinates(payload.get("streams"))
    if coordinates:
        return coordinates

    activity_map = payload.get("map") or {}
    encoded = activity_map.get("polyline") or activity_map.get("summary_polyline")
    if encoded:
        return decode(encoded)
    return []


class StravaService:
    """
    Client for the Strava activity endpoints.

    Args:
        base_url: API root (defaults to STRAVA_API_URL)
        access_token: Static bearer token (defaults to STRAVA_ACCESS_TOKEN)
        token_provider: Async callable returning a token for an owner hint (Strava user id)
        timeout: Request timeout in seconds
        logger: Logger instance
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = (base_url or config.STRAVA_API_URL).rstrip("/")
        self.access_token = access_token if access_token is not None else config.STRAVA_ACCESS_TOKEN
        self.token_provider = token_provider
        self.timeout = timeout or config.STRAVA_REQUEST_TIMEOUT_SECONDS
        self.logger = logger or setup_default_logging()

    async def _resolve_token(self, owner_hint: Optional[str]) -> str:
        token = None
        if self.token_provider is not None:
            token = await self.token_provider(owner_hint)
        token = token or self.access_token
        if not token:
            raise ExternalFetchFailed(
                "No access token provided for Strava API request", status=401
            )
        return token

    @staticmethod
    def _error_message(status_code: int) -> str:
        if status_code == 401:
            return "Strava access token has expired or is invalid"
        if status_code == 404:
            return "Activity does not exist or is not accessible with this token"
        if status_code == 429:
            return "Strava API rate limit exceeded"
        return f"Strava API request failed: {status_code}"

    async def _api_get(
        self,
        client: httpx.AsyncClient,
        url: str,
        token: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        response = await client.get(
            url,
            params=params,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {token}",
                "User-Agent": f"mapfulfillment/{__version__}",
            },
        )
        if response.status_code != 200:
            raise ExternalFetchFailed(
                self._error_message(response.status_code), status=response.status_code
            )
        return response.json()

    async def get_activity(
        self,
        activity_id: Any,
        owner_hint: Optional[str] = None,
        include_streams: bool = True,
    ) -> Dict[str, Any]:
        """
        Fetch an activity with its GPS stream.

        A missing stream is not fatal: the activity polyline is used instead.

        Args:
            activity_id: Numeric Strava activity id
            owner_hint: Strava user id of the activity owner, used to pick a token
            include_streams: Also fetch the ``latlng`` stream

        Returns:
            Activity payload, with the stream under ``streams`` when fetched

        Raises:
            InvalidInput: If the activity id is not numeric
            ExternalFetchFailed: On HTTP or transport errors
        """
        activity_id = str(activity_id).strip()
        if not activity_id.isdigit():
            raise InvalidInput(f"Activity ID must be a valid number: {activity_id!r}")

        token = await self._resolve_token(owner_hint)
        url = f"{self.base_url}/activities/{activity_id}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                activity: Dict[str, Any] = await self._api_get(client, url, token)
                if include_streams:
                    try:
                        activity["streams"] = await self._api_get(
                            client,
                            f"{url}/streams",
                            token,
                            params={"keys": "latlng", "key_by_type": "true"},
                        )
                    except ExternalFetchFailed as e:
                        self.logger.warning(
                            f"Could not fetch GPS stream for activity {activity_id}: {e}"
                        )
        except httpx.HTTPError as e:
            raise ExternalFetchFailed(f"Strava API request failed: {e}") from e

        self.logger.info(f"Fetched activity {activity_id} from Strava")
        return activity

    @staticmethod
    def validate_activity_for_rendering(payload: Any) -> Dict[str, Any]:
        """
        Check that an activity payload holds a renderable track.

        Returns:
            Dict with ``valid`` (bool) and ``reason`` (str or None)
        """
        if not isinstance(payload, Mapping):
            return {"valid": False, "reason": "activity payload is not an object"}
        if not payload.get("id"):
            return {"valid": False, "reason": "activity has no id"}
        try:
            coordinates = extract_coordinates(payload)
        except InvalidInput as e:
            return {"valid": False, "reason": f"activity polyline is malformed: {e}"}
        if len(coordinates) < MIN_ROUTE_POINTS:
            return {"valid": False, "reason": "activity has no GPS track"}
        return {"valid": True, "reason": None}

    @staticmethod
    def normalize_activity(payload: Mapping) -> Dict[str, Any]:
        """Normalize an activity payload to coordinates plus poster metadata."""
        return {
            "id": payload.get("id"),
            "name": payload.get("name"),
            "type": payload.get("sport_type") or payload.get("type"),
            "distance": payload.get("distance"),
            "movingTime": payload.get("moving_time"),
            "elevationGain": payload.get("total_elevation_gain"),
            "coordinates": extract_coordinates(payload),
        }
