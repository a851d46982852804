import math

import pytest

from grader_worker.core.geo import haversine_meters

AUSTIN = (30.2672, -97.7431)
DALLAS = {"lat": 32.7767, "lng": -96.7970}


def test_distance_is_symmetric():
    assert haversine_meters(AUSTIN, DALLAS) == pytest.approx(haversine_meters(DALLAS, AUSTIN))


def test_distance_to_self_is_zero():
    assert haversine_meters(AUSTIN, AUSTIN) == 0


def test_known_distance():
    # Austin to Dallas is roughly 292 km.
    assert haversine_meters(AUSTIN, DALLAS) == pytest.approx(292_000, rel=0.01)


def test_one_degree_of_latitude():
    assert haversine_meters((0, 0), (1, 0)) == pytest.approx(6_371_000 * math.pi / 180)


@pytest.mark.parametrize(
    "origin,target",
    [
        (None, AUSTIN),
        (AUSTIN, None),
        ({"lat": 30.0}, AUSTIN),
        ({"lat": "30.0", "lng": -97.0}, AUSTIN),
        ((float("nan"), -97.0), AUSTIN),
        ((True, -97.0), AUSTIN),
        ((30.0,), AUSTIN),
    ],
)
def test_unusable_coordinates_return_none(origin, target):
    assert haversine_meters(origin, target) is None
