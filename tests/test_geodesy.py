import math

from tax_appeal_comps.geodesy import distance_between, haversine_miles
from tax_appeal_comps.models import Coordinates


def test_distance_is_symmetric():
    a = (41.88, -87.63)
    b = (41.90, -87.65)
    assert math.isclose(haversine_miles(*a, *b), haversine_miles(*b, *a))


def test_distance_to_self_is_zero():
    assert haversine_miles(41.88, -87.63, 41.88, -87.63) == 0.0


def test_distance_matches_known_scale():
    # Roughly 1.7 miles between these two Chicago points.
    miles = haversine_miles(41.88, -87.63, 41.90, -87.65)
    assert 1.6 < miles < 1.85


def test_distance_between_needs_both_points():
    here = Coordinates(41.88, -87.63)
    assert distance_between(here, None) is None
    assert distance_between(None, here) is None
    assert distance_between(here, here) == 0.0
