import logging

import pytest

from mapfulfillment.core.exceptions import EmptyRoute
from mapfulfillment.utils.geometry import (
    PRINT_DIMENSIONS,
    calculate_bounds,
    calculate_center,
    get_print_dimensions,
    resolve_print_format,
)


def test_bounds_contain_every_coordinate():
    coords = [[2.1, 48.5], [2.4, 48.9], [1.9, 48.7]]

    bounds = calculate_bounds(coords)

    assert bounds == {"west": 1.9, "east": 2.4, "south": 48.5, "north": 48.9}
    for lng, lat in coords:
        assert bounds["west"] <= lng <= bounds["east"]
        assert bounds["south"] <= lat <= bounds["north"]


def test_bounds_of_single_point_are_degenerate():
    bounds = calculate_bounds([[5.0, 45.0]])
    assert bounds["west"] == bounds["east"] == 5.0
    assert bounds["south"] == bounds["north"] == 45.0


def test_bounds_of_empty_route_raise():
    with pytest.raises(EmptyRoute):
        calculate_bounds([])


def test_center_is_bounds_midpoint():
    center = calculate_center({"west": 1.0, "east": 3.0, "south": 40.0, "north": 44.0})
    assert center == [2.0, 42.0]


@pytest.mark.parametrize(
    "print_format,orientation,expected",
    [
        ("A4", "portrait", (2480, 3508)),
        ("A4", "landscape", (3508, 2480)),
        ("A3", "portrait", (3508, 4961)),
        ("A3", "landscape", (4961, 3508)),
    ],
)
def test_print_dimensions_table(print_format, orientation, expected):
    dims = get_print_dimensions(print_format, orientation)
    assert (dims["width"], dims["height"]) == expected


def test_landscape_swaps_portrait_dimensions():
    for sizes in PRINT_DIMENSIONS.values():
        assert sizes["landscape"]["width"] == sizes["portrait"]["height"]
        assert sizes["landscape"]["height"] == sizes["portrait"]["width"]


def test_format_matching_is_case_insensitive(test_logger, caplog):
    with caplog.at_level(logging.WARNING, logger=test_logger.name):
        print_format, orientation, dims = resolve_print_format("a3", "Landscape", test_logger)

    assert (print_format, orientation) == ("A3", "landscape")
    assert dims == {"width": 4961, "height": 3508}
    assert not caplog.records


def test_unknown_format_falls_back_to_a4_portrait_with_warning(test_logger, caplog):
    with caplog.at_level(logging.WARNING, logger=test_logger.name):
        print_format, orientation, dims = resolve_print_format("Letter", "portrait", test_logger)

    assert (print_format, orientation) == ("A4", "portrait")
    assert dims == {"width": 2480, "height": 3508}
    assert any("falling back" in r.getMessage() for r in caplog.records)


def test_returned_dimensions_are_a_copy():
    dims = get_print_dimensions("A4", "portrait")
    dims["width"] = 1
    assert PRINT_DIMENSIONS["A4"]["portrait"]["width"] == 2480
