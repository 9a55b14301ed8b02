import base64
import copy
import json
import logging

import pytest

from mapfulfillment.core.exceptions import ConfigurationInvalid, ExternalFetchFailed
from mapfulfillment.managers.config_store import FileConfigurationStore
from mapfulfillment.managers.session_store import InMemorySessionStore, UnavailableSessionStore
from mapfulfillment.models.models import ConfigSource, LineItemProperty, Order
from mapfulfillment.resolvers import (
    OrderPropertiesResolver,
    SessionStorageResolver,
    StravaApiResolver,
)
from mapfulfillment.services.strava_service import StravaService
from mapfulfillment.utils.polyline import encode

COORDS = [[2.1, 48.5], [2.4, 48.9], [2.3, 48.6]]

VALID_CONFIG = {
    "width": 2480,
    "height": 3508,
    "center": [2.25, 48.7],
    "bounds": {"north": 48.9, "south": 48.5, "east": 2.4, "west": 2.1},
    "style": "mapbox://styles/mapbox/outdoors-v12",
    "route": {"coordinates": COORDS, "color": "#fc5200", "width": 4},
}

ORDER = Order(id=1001, name="#1001")


class FakeActivityApi(StravaService):
    """Strava client returning a canned activity."""

    def __init__(self, payload=None, error=None):
        super().__init__(
            base_url="https://strava.test",
            access_token="tok",
            logger=logging.getLogger("mapfulfillment_tests"),
        )
        self.payload = payload
        self.error = error
        self.calls = []

    async def get_activity(self, activity_id, owner_hint=None, include_streams=True):
        self.calls.append((str(activity_id), owner_hint))
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payload)


def _activity(activity_id=12345):
    return {
        "id": activity_id,
        "name": "Morning Ride",
        "sport_type": "Ride",
        "distance": 42000.0,
        "map": {"summary_polyline": encode(COORDS)},
    }


def _props(**values):
    return [LineItemProperty(name=name.replace("_", " "), value=v) for name, v in values.items()]


@pytest.fixture
def store(tmp_path, test_logger):
    return FileConfigurationStore(base_path=str(tmp_path / "configs"), logger=test_logger)


def _order_resolver(store, test_logger, activity_api=None):
    strava = StravaApiResolver(activity_api or FakeActivityApi(_activity()), logger=test_logger)
    return OrderPropertiesResolver(store, strava, logger=test_logger)


# --- Order properties ---------------------------------------------------------


@pytest.mark.asyncio
async def test_stored_nested_configuration_gets_canonical_dimensions(store, test_logger):
    nested = {k: v for k, v in VALID_CONFIG.items() if k not in ("width", "height")}
    nested.update(printSize="A4", orientation="portrait")
    await store.save_configuration(
        "cfg_42",
        {
            "activityId": "12345",
            "printSize": "A3",
            "orientation": "landscape",
            "mapConfiguration": nested,
        },
    )
    resolver = _order_resolver(store, test_logger)

    result = await resolver.resolve(_props(Configuration_ID="cfg_42"), ORDER)

    assert result["source"] == ConfigSource.JSON_FILE.value
    assert result["configId"] == "cfg_42"
    assert (result["width"], result["height"]) == (2480, 3508)
    assert result["dpi"] == 300
    assert result["format"] == "A4"


@pytest.mark.asyncio
async def test_stored_configuration_with_stale_source_is_retagged(store, test_logger):
    await store.save_configuration(
        "cfg_1",
        {
            "activityId": "12345",
            "printSize": "A3",
            "orientation": "landscape",
            "mapConfiguration": {**VALID_CONFIG, "source": "preview", "configId": "other"},
        },
    )

    result = await _order_resolver(store, test_logger).resolve(
        _props(Configuration_ID="cfg_1"), ORDER
    )

    assert result["source"] == "json_file"
    assert result["configId"] == "cfg_1"
    assert (result["width"], result["height"]) == (4961, 3508)


@pytest.mark.asyncio
async def test_incomplete_configuration_is_reconstructed(store, test_logger):
    await store.save_configuration(
        "cfg_2",
        {
            "activityId": "12345",
            "printSize": "A4",
            "orientation": "landscape",
            "coordinates": COORDS,
        },
    )

    result = await _order_resolver(store, test_logger).resolve(
        _props(Configuration_ID="cfg_2"), ORDER
    )

    assert result["source"] == ConfigSource.JSON_FILE_RECONSTRUCTED.value
    assert result["configId"] == "cfg_2"
    assert result["route"]["coordinates"] == COORDS
    assert result["center"] == pytest.approx([2.25, 48.7])
    assert result["style"] == "mapbox://styles/mapbox/outdoors-v12"
    assert "needsExternalReconstruction" not in result


@pytest.mark.asyncio
async def test_activity_id_only_is_rebuilt_from_activity_api(store, test_logger):
    await store.save_configuration(
        "cfg_3",
        {
            "activityId": "12345",
            "printSize": "A3",
            "orientation": "portrait",
            "activityData": {"id": 12345, "name": "Morning Ride"},
        },
    )
    api = FakeActivityApi(_activity())

    result = await _order_resolver(store, test_logger, api).resolve(
        _props(Configuration_ID="cfg_3", Strava_User_ID="777"), ORDER
    )

    assert api.calls == [("12345", "777")]
    assert result["source"] == ConfigSource.STRAVA_FROM_STORED_DATA.value
    assert result["configId"] == "cfg_3"
    assert (result["width"], result["height"]) == (3508, 4961)
    assert result["route"]["coordinates"] == COORDS


@pytest.mark.asyncio
async def test_renderable_stored_activity_is_used_without_fetch(store, test_logger):
    await store.save_configuration(
        "cfg_4",
        {"activityId": "12345", "printSize": "A4", "orientation": "portrait"},
    )
    # Activity payload kept next to the configuration rather than inside it
    path = store.get_path("cfg_4")
    document = json.loads(path.read_text(encoding="utf-8"))
    document["mapConfiguration"]["activityData"] = {"id": 12345}
    document["activityData"] = _activity()
    path.write_text(json.dumps(document), encoding="utf-8")
    api = FakeActivityApi(error=ExternalFetchFailed("should not be called"))

    result = await _order_resolver(store, test_logger, api).resolve(
        _props(Configuration_ID="cfg_4"), ORDER
    )

    assert api.calls == []
    assert result["source"] == ConfigSource.STRAVA_FROM_STORED_DATA.value


@pytest.mark.asyncio
async def test_unrecoverable_configuration_falls_back_to_legacy(store, test_logger):
    await store.save_configuration(
        "cfg_5", {"activityId": "12345", "printSize": "A4", "orientation": "portrait"}
    )
    legacy = base64.b64encode(json.dumps(VALID_CONFIG).encode("utf-8")).decode("ascii")

    result = await _order_resolver(store, test_logger).resolve(
        _props(Configuration_ID="cfg_5", Map_Config=legacy), ORDER
    )

    assert result["source"] == ConfigSource.BASE64_LEGACY.value
    assert "configId" not in result


@pytest.mark.asyncio
async def test_store_failure_falls_back_to_legacy(store, test_logger):
    store.get_path("cfg_bad").write_text("{broken", encoding="utf-8")
    legacy = base64.b64encode(json.dumps(VALID_CONFIG).encode("utf-8")).decode("ascii")

    result = await _order_resolver(store, test_logger).resolve(
        _props(Configuration_ID="cfg_bad", Map_Config=legacy), ORDER
    )

    assert result["source"] == "base64_legacy"


@pytest.mark.asyncio
async def test_stored_activity_fetch_failure_falls_back_to_legacy(store, test_logger, caplog):
    await store.save_configuration(
        "cfg_6",
        {
            "activityId": "12345",
            "printSize": "A4",
            "orientation": "portrait",
            "activityData": {"id": 12345},
        },
    )
    api = FakeActivityApi(error=ExternalFetchFailed("rate limited", status=429))
    legacy = base64.b64encode(json.dumps(VALID_CONFIG).encode("utf-8")).decode("ascii")

    with caplog.at_level(logging.WARNING, logger="mapfulfillment_tests"):
        result = await _order_resolver(store, test_logger, api).resolve(
            _props(Configuration_ID="cfg_6", Map_Config=legacy), ORDER
        )

    assert api.calls == [("12345", None)]
    assert result["source"] == ConfigSource.BASE64_LEGACY.value
    assert "Configuration cfg_6 could not be used: rate limited" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("legacy", ["not base64!", base64.b64encode(b"[1, 2]").decode("ascii")])
async def test_bad_legacy_property_yields_nothing(store, test_logger, legacy):
    result = await _order_resolver(store, test_logger).resolve(_props(Map_Config=legacy), ORDER)
    assert result is None


@pytest.mark.asyncio
async def test_no_reference_yields_nothing(store, test_logger):
    assert await _order_resolver(store, test_logger).resolve(_props(), ORDER) is None


# --- Session storage ----------------------------------------------------------


@pytest.mark.asyncio
async def test_session_preview_is_unwrapped(test_logger):
    sessions = InMemorySessionStore()
    sessions.put("prev_1", {"config": {**VALID_CONFIG, "source": "preview"}})
    resolver = SessionStorageResolver(sessions, logger=test_logger)

    result = await resolver.resolve(_props(Preview_ID="prev_1"), ORDER)

    assert result["width"] == 2480
    assert "source" not in result


@pytest.mark.asyncio
async def test_session_preview_incomplete_or_missing(test_logger):
    sessions = InMemorySessionStore()
    sessions.put("prev_1", {"style": "streets-v12"})
    resolver = SessionStorageResolver(sessions, logger=test_logger)

    assert await resolver.resolve(_props(Preview_ID="prev_1"), ORDER) is None
    assert await resolver.resolve(_props(Preview_ID="prev_2"), ORDER) is None
    assert await resolver.resolve(_props(), ORDER) is None


@pytest.mark.asyncio
async def test_expired_session_preview_is_not_found(test_logger):
    sessions = InMemorySessionStore(ttl_seconds=0)
    sessions.put("prev_1", dict(VALID_CONFIG))

    assert await sessions.find_by_preview_id("prev_1") is None


@pytest.mark.asyncio
async def test_unavailable_session_store(test_logger):
    resolver = SessionStorageResolver(UnavailableSessionStore(logger=test_logger), test_logger)
    assert await resolver.resolve(_props(Preview_ID="prev_1"), ORDER) is None


# --- Strava API ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_strava_resolver_builds_configuration_from_properties(test_logger):
    api = FakeActivityApi(_activity())
    resolver = StravaApiResolver(api, logger=test_logger)
    properties = _props(
        Activity_ID="12345",
        Strava_User_ID="777",
        Print_Size="a3",
        Orientation="landscape",
        Map_Style="satellite-streets-v12",
        Route_Color="#00ff00",
        Route_Width="6",
    )

    result = await resolver.resolve(properties, ORDER)

    assert api.calls == [("12345", "777")]
    assert (result["width"], result["height"]) == (4961, 3508)
    assert result["format"] == "A3"
    assert result["style"] == "mapbox://styles/mapbox/satellite-streets-v12"
    assert result["route"] == {"coordinates": COORDS, "color": "#00ff00", "width": 6.0}
    assert result["markers"] == {"start": COORDS[0], "end": COORDS[-1]}
    assert result["bounds"] == {"west": 2.1, "east": 2.4, "south": 48.5, "north": 48.9}
    assert result["title"] == "Morning Ride"
    assert result["reconstructed"] is True
    assert result["id"].startswith("order_")
    assert "source" not in result


@pytest.mark.asyncio
async def test_strava_resolver_defaults(test_logger):
    resolver = StravaApiResolver(FakeActivityApi(_activity()), logger=test_logger)

    result = await resolver.resolve(_props(Activity_ID="12345", Route_Width="-2"), ORDER)

    assert (result["format"], result["orientation"]) == ("A4", "portrait")
    assert result["style"] == "mapbox://styles/mapbox/outdoors-v12"
    assert result["route"]["color"] == "#fc5200"
    assert result["route"]["width"] == 4


@pytest.mark.asyncio
async def test_strava_resolver_without_activity_id(test_logger):
    api = FakeActivityApi(_activity())
    resolver = StravaApiResolver(api, logger=test_logger)

    assert await resolver.resolve(_props(), ORDER) is None
    assert api.calls == []


@pytest.mark.asyncio
async def test_strava_resolver_fetch_failure_yields_nothing(test_logger):
    api = FakeActivityApi(error=ExternalFetchFailed("rate limited", status=429))
    resolver = StravaApiResolver(api, logger=test_logger)

    assert await resolver.resolve(_props(Activity_ID="12345"), ORDER) is None


def test_build_config_rejects_activity_without_track(test_logger):
    resolver = StravaApiResolver(FakeActivityApi(), logger=test_logger)

    with pytest.raises(ConfigurationInvalid, match="no GPS track") as exc_info:
        resolver.build_config_from_activity({"id": 1, "map": {}}, _props())

    assert exc_info.value.errors == ["activity has no GPS track"]
