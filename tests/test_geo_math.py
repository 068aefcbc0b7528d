import math

import pytest

from buildinglens.schemas import Coordinate
from buildinglens.services import geo_math

SAN_FRANCISCO = Coordinate(latitude=37.7749, longitude=-122.4194)
NEW_YORK = Coordinate(latitude=40.7128, longitude=-74.0060)
SYDNEY = Coordinate(latitude=-33.8688, longitude=151.2093)

PAIRS = [
    (SAN_FRANCISCO, NEW_YORK),
    (NEW_YORK, SYDNEY),
    (SYDNEY, SAN_FRANCISCO),
    (Coordinate(latitude=0, longitude=179.9), Coordinate(latitude=0, longitude=-179.9)),
    (Coordinate(latitude=89.9, longitude=0), Coordinate(latitude=89.9, longitude=180)),
]


@pytest.mark.parametrize("point", [SAN_FRANCISCO, NEW_YORK, SYDNEY, Coordinate(latitude=90, longitude=0)])
def test_distance_to_self_is_zero(point):
    assert geo_math.distance_meters(point, point) == 0


@pytest.mark.parametrize("a,b", PAIRS)
def test_distance_is_symmetric(a, b):
    assert geo_math.distance_meters(a, b) == pytest.approx(geo_math.distance_meters(b, a), abs=1.0)


def test_distance_san_francisco_to_new_york():
    # Great-circle distance on a 6371km sphere is roughly 4129km.
    assert geo_math.distance_meters(SAN_FRANCISCO, NEW_YORK) == pytest.approx(4_129_000, rel=0.01)


def test_distance_across_antimeridian_is_short():
    a, b = PAIRS[3]
    assert geo_math.distance_meters(a, b) == pytest.approx(22_239, rel=0.01)


def test_one_degree_of_latitude():
    a = Coordinate(latitude=0, longitude=0)
    b = Coordinate(latitude=1, longitude=0)
    assert geo_math.distance_meters(a, b) == pytest.approx(math.pi * 6371000 / 180)


@pytest.mark.parametrize(
    "to,expected",
    [
        (Coordinate(latitude=1, longitude=0), 0.0),
        (Coordinate(latitude=0, longitude=1), 90.0),
        (Coordinate(latitude=-1, longitude=0), 180.0),
        (Coordinate(latitude=0, longitude=-1), 270.0),
    ],
)
def test_bearing_cardinal_directions(to, expected):
    origin = Coordinate(latitude=0, longitude=0)
    assert geo_math.bearing_degrees(origin, to) == pytest.approx(expected, abs=1e-9)


@pytest.mark.parametrize("a,b", PAIRS[:3])
def test_bearing_is_in_range(a, b):
    bearing = geo_math.bearing_degrees(a, b)
    assert 0 <= bearing < 360


def test_normalize_angle():
    assert geo_math.normalize_angle(-45) == 315
    assert geo_math.normalize_angle(360) == 0
    assert geo_math.normalize_angle(720) == 0
    assert geo_math.normalize_angle(45.5) == 45.5
    assert geo_math.normalize_angle(-1e-20) == 0.0


def test_normalize_angle_propagates_nan():
    assert math.isnan(geo_math.normalize_angle(float("nan")))


def test_angular_difference_wraparound():
    assert geo_math.angular_difference(350, 10) == 20
    assert geo_math.angular_difference(1, 359) == 2
    assert geo_math.angular_difference(0, 180) == 180
    assert geo_math.angular_difference(90, 90) == 0
    assert geo_math.angular_difference(-90, 270) == 0


def test_angular_difference_range_and_symmetry():
    angles = [0, 0.5, 15, 89.9, 90, 179, 180, 181, 270, 359.5]
    for x in angles:
        for y in angles:
            diff = geo_math.angular_difference(x, y)
            assert 0 <= diff <= 180
            assert diff == geo_math.angular_difference(y, x)


def test_bearing_and_distance_with_and_without_heading():
    origin = Coordinate(latitude=0, longitude=0)
    east = Coordinate(latitude=0, longitude=0.001)

    without = geo_math.bearing_and_distance(origin, east)
    assert without.bearing_diff is None
    assert without.bearing == pytest.approx(90)

    facing_north = geo_math.bearing_and_distance(origin, east, heading=0)
    assert facing_north.bearing_diff == pytest.approx(90)
    assert facing_north.distance == pytest.approx(without.distance)
