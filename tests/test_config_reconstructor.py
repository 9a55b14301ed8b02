import copy

import pytest

from mapfulfillment.services.config_reconstructor import (
    NEEDS_EXTERNAL_RECONSTRUCTION,
    format_style_reference,
    reconstruct_configuration,
    stored_activity_id,
)
from mapfulfillment.services.config_validator import validate_map_config
from mapfulfillment.utils.polyline import encode

COORDS = [[2.1, 48.5], [2.4, 48.9], [2.3, 48.6]]


def test_format_style_reference():
    assert format_style_reference("outdoors-v12") == "mapbox://styles/mapbox/outdoors-v12"
    assert (
        format_style_reference("mapbox://styles/acme/custom") == "mapbox://styles/acme/custom"
    )


def test_reconstructs_from_embedded_coordinates(test_logger):
    document = {
        "mapConfiguration": {
            "coordinates": COORDS,
            "config": {"printSize": "A3", "orientation": "landscape", "style": "light-v11"},
            "customization": {"routeColor": "#123456", "routeWidth": 6},
        }
    }

    result = reconstruct_configuration({}, document, log=test_logger)

    assert validate_map_config(result).valid
    assert (result["width"], result["height"]) == (4961, 3508)
    assert result["style"] == "mapbox://styles/mapbox/light-v11"
    assert result["route"] == {"coordinates": COORDS, "color": "#123456", "width": 6}
    assert result["bounds"] == {"west": 2.1, "east": 2.4, "south": 48.5, "north": 48.9}
    assert result["center"] == pytest.approx([2.25, 48.7])


def test_reconstructs_from_stored_polyline(test_logger):
    document = {
        "mapConfiguration": {
            "activityData": {"id": 99, "map": {"summary_polyline": encode(COORDS)}},
        }
    }

    result = reconstruct_configuration({}, document, default_style="streets-v12", log=test_logger)

    assert validate_map_config(result).valid
    assert len(result["route"]["coordinates"]) == 3
    assert result["style"] == "mapbox://styles/mapbox/streets-v12"
    assert NEEDS_EXTERNAL_RECONSTRUCTION not in result


def test_flags_external_reconstruction_when_only_activity_id(test_logger):
    document = {"mapConfiguration": {"activityData": {"id": 12345}}}

    result = reconstruct_configuration({}, document, log=test_logger)

    assert result[NEEDS_EXTERNAL_RECONSTRUCTION] is True
    assert "route" not in result
    assert validate_map_config(result).valid is False


def test_malformed_polyline_falls_through_to_flag(test_logger):
    document = {
        "mapConfiguration": {"activityData": {"id": 7, "map": {"summary_polyline": "_p~iF"}}}
    }

    result = reconstruct_configuration({}, document, log=test_logger)

    assert result[NEEDS_EXTERNAL_RECONSTRUCTION] is True


def test_existing_fields_are_kept_and_input_untouched(test_logger):
    partial = {
        "width": 2480,
        "height": 3508,
        "style": "mapbox://styles/acme/custom",
        "route": {"coordinates": COORDS},
    }
    snapshot = copy.deepcopy(partial)

    document = {"mapPreferences": {"mapStyle": "dark-v11"}}

    result = reconstruct_configuration(partial, document, log=test_logger)

    assert partial == snapshot
    assert result["style"] == "mapbox://styles/acme/custom"
    assert result["center"] == pytest.approx([2.25, 48.7])


def test_nothing_recoverable_returns_incomplete_configuration(test_logger):
    result = reconstruct_configuration(None, {}, log=test_logger)

    assert result is not None
    assert result["style"] == "mapbox://styles/mapbox/outdoors-v12"
    assert "route" not in result
    assert NEEDS_EXTERNAL_RECONSTRUCTION not in result


def test_stored_activity_id_locations():
    assert stored_activity_id({"mapConfiguration": {"activityData": {"id": 1}}}) == 1
    assert stored_activity_id({"activityData": {"id": 2}}) == 2
    assert stored_activity_id({}) is None
