import math

import pytest

from barriowatch.core.geo import EARTH_RADIUS_M, GeoPoint, haversine_m


POINTS = [
    GeoPoint(lat=18.4861, lon=-69.9312),
    GeoPoint(lat=18.4900, lon=-69.9000),
    GeoPoint(lat=-33.8688, lon=151.2093),
    GeoPoint(lat=0.0, lon=179.9),
    GeoPoint(lat=0.0, lon=-179.9),
    GeoPoint(lat=89.9, lon=10.0),
]


@pytest.mark.parametrize("a", POINTS)
@pytest.mark.parametrize("b", POINTS)
def test_haversine_is_symmetric(a, b):
    assert haversine_m(a, b) == pytest.approx(haversine_m(b, a))


@pytest.mark.parametrize("p", POINTS)
def test_haversine_same_point_is_zero(p):
    assert haversine_m(p, p) == pytest.approx(0.0, abs=1e-6)


def test_haversine_300m_along_meridian():
    # Along a meridian the haversine distance is exactly R * dlat.
    dlat_deg = math.degrees(300 / EARTH_RADIUS_M)
    a = GeoPoint(lat=18.4861, lon=-69.9312)
    b = GeoPoint(lat=a.lat + dlat_deg, lon=a.lon)
    assert haversine_m(a, b) == pytest.approx(300.0, abs=1.0)


def test_haversine_crosses_antimeridian_short_way():
    a = GeoPoint(lat=0.0, lon=179.9)
    b = GeoPoint(lat=0.0, lon=-179.9)
    expected = EARTH_RADIUS_M * math.radians(0.2)
    assert haversine_m(a, b) == pytest.approx(expected, rel=1e-6)


def test_haversine_antipodal_points_do_not_fail():
    a = GeoPoint(lat=10.0, lon=20.0)
    b = GeoPoint(lat=-10.0, lon=-160.0)
    assert haversine_m(a, b) == pytest.approx(math.pi * EARTH_RADIUS_M, rel=1e-6)
