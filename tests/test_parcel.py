"""
Unit tests for parcel, zone and terrain input types.
"""
import pytest

from polyplan.services.exceptions import InvalidParcelError
from polyplan.services.parcel import (
    GeoPoint,
    LandParcel,
    LocalProjection,
    RestrictedArea,
    RestrictedAreaType,
    Severity,
    Zone,
    ZoneKind,
)
from tests.conftest import REF_LAT, REF_LNG, rectangle_coords


class TestLocalProjection:
    """Tests for the equirectangular projection."""

    def test_origin_maps_to_zero(self):
        proj = LocalProjection(REF_LAT, REF_LNG)
        assert proj.project(GeoPoint(REF_LAT, REF_LNG)) == (0.0, 0.0)

    def test_round_trip(self):
        proj = LocalProjection(REF_LAT, REF_LNG)
        point = GeoPoint(REF_LAT + 0.001, REF_LNG - 0.002)
        back = proj.unproject(*proj.project(point))
        assert back.lat == pytest.approx(point.lat, abs=1e-12)
        assert back.lng == pytest.approx(point.lng, abs=1e-12)

    def test_one_degree_latitude(self):
        proj = LocalProjection(0.0, 0.0)
        _, y = proj.project(GeoPoint(1.0, 0.0))
        assert y == pytest.approx(111320.0)


class TestLandParcel:
    """Tests for LandParcel.from_coordinates."""

    def test_area_of_square(self, square_300):
        assert square_300.area_m2 == pytest.approx(90_000, rel=1e-6)

    def test_ring_is_closed(self):
        parcel = LandParcel.from_coordinates(rectangle_coords(100, 50))
        assert parcel.ring[0] == parcel.ring[-1]
        assert len(parcel.ring) == 5

    def test_already_closed_ring_is_kept(self):
        coords = rectangle_coords(100, 50)
        parcel = LandParcel.from_coordinates(coords + [coords[0]])
        assert len(parcel.ring) == 5

    def test_accepts_tuples(self):
        coords = [(p["lat"], p["lng"]) for p in rectangle_coords(100, 50)]
        parcel = LandParcel.from_coordinates(coords)
        assert parcel.area_m2 == pytest.approx(5000, rel=1e-6)

    def test_centroid_and_latitude(self, square_300):
        assert square_300.centroid.lat == pytest.approx(REF_LAT)
        assert square_300.centroid.lng == pytest.approx(REF_LNG)
        assert square_300.latitude == pytest.approx(REF_LAT)

    def test_too_few_points(self):
        with pytest.raises(InvalidParcelError, match="At least 3 coordinates required"):
            LandParcel.from_coordinates(rectangle_coords(10, 10)[:2])

    def test_duplicate_points_do_not_count(self):
        a, b = rectangle_coords(10, 10)[:2]
        with pytest.raises(InvalidParcelError):
            LandParcel.from_coordinates([a, b, a, b])

    def test_collinear_points_rejected(self):
        coords = [(REF_LAT, REF_LNG), (REF_LAT, REF_LNG + 0.001), (REF_LAT, REF_LNG + 0.002)]
        with pytest.raises(InvalidParcelError):
            LandParcel.from_coordinates(coords)

    def test_to_dict(self, square_300):
        data = square_300.to_dict()
        assert data["name"] == "Square 300"
        assert data["area"] == pytest.approx(90_000, rel=1e-6)
        assert len(data["coordinates"]) == 5


class TestZones:
    """Tests for user zones and restricted areas."""

    def test_zone_planar_polygon(self, square_300):
        zone = Zone.from_coordinates("exclusion", rectangle_coords(50, 40), name="Pond")
        poly = zone.planar_polygon(square_300.projection)
        assert zone.kind == ZoneKind.EXCLUSION
        assert poly.area == pytest.approx(2000, rel=1e-6)

    def test_restricted_area_without_outline(self, square_300):
        area = RestrictedArea.from_coordinates("water", "Lake", severity="prohibited")
        assert area.planar_polygon(square_300.projection) is None

    def test_restricted_area_types(self):
        area = RestrictedArea.from_coordinates(
            "steep_slope", "Slope above 15 deg", rectangle_coords(10, 10), severity="challenging"
        )
        assert area.type == RestrictedAreaType.STEEP_SLOPE
        assert area.severity == Severity.CHALLENGING
        assert area.coordinates[0] == area.coordinates[-1]

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            RestrictedArea.from_coordinates("lava", "Volcano")
