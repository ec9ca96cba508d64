"""
Shared fixtures for planner tests.

Parcels are built from planar metre offsets around a reference point so the
expected areas are exact under the local projection.
"""
import math

import pytest

from polyplan.services.configuration import PlannerConfiguration
from polyplan.services.parcel import METERS_PER_DEGREE, GeoPoint, LandParcel

REF_LAT = 20.0
REF_LNG = 78.0


def to_geo(x: float, y: float, lat0: float = REF_LAT, lng0: float = REF_LNG) -> GeoPoint:
    """Planar offset (metres east, north) to a geographic point."""
    return GeoPoint(
        lat=lat0 + y / METERS_PER_DEGREE,
        lng=lng0 + x / (METERS_PER_DEGREE * math.cos(math.radians(lat0))),
    )


def rectangle_coords(width_m: float, height_m: float, lat0: float = REF_LAT) -> list[dict]:
    """Axis-aligned rectangle centred on the reference point, as lat/lng dicts."""
    hw, hh = width_m / 2, height_m / 2
    return [
        to_geo(x, y, lat0).to_dict()
        for x, y in [(-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh)]
    ]


def polygon_coords(points: list[tuple[float, float]], lat0: float = REF_LAT) -> list[dict]:
    return [to_geo(x, y, lat0).to_dict() for x, y in points]


@pytest.fixture
def default_config() -> PlannerConfiguration:
    return PlannerConfiguration()


@pytest.fixture
def square_300() -> LandParcel:
    """300 m x 300 m parcel (9 ha)."""
    return LandParcel.from_coordinates(rectangle_coords(300, 300), name="Square 300")


@pytest.fixture
def small_parcel() -> LandParcel:
    """25 m x 20 m parcel (500 sqm), too small for any regular structure."""
    return LandParcel.from_coordinates(rectangle_coords(25, 20), name="Small plot")


@pytest.fixture
def medium_parcel() -> LandParcel:
    """140 m x 120 m parcel."""
    return LandParcel.from_coordinates(rectangle_coords(140, 120), name="Medium plot")


@pytest.fixture
def l_shaped_parcel() -> LandParcel:
    """200 m square with the north-east 100 m quadrant removed."""
    points = [(-100, -100), (100, -100), (100, 0), (0, 0), (0, 100), (-100, 100)]
    return LandParcel.from_coordinates(polygon_coords(points), name="L plot")
