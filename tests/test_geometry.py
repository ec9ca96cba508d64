"""
Unit tests for the planar geometry kernel.
"""
import math

import pytest
from shapely.geometry import Polygon, box

from polyplan.services.exceptions import GeometryError
from polyplan.services.geometry import (
    EPSILON,
    Rectangle,
    contains,
    minimum_separation,
    offset_inward,
    polygon_area,
    polygon_centroid,
    rectangles_intersect,
)


class TestPolygonArea:
    """Tests for polygon_area."""

    def test_square(self):
        assert polygon_area([(0, 0), (10, 0), (10, 10), (0, 10)]) == pytest.approx(100.0)

    def test_orientation_does_not_matter(self):
        cw = [(0, 0), (0, 10), (10, 10), (10, 0)]
        assert polygon_area(cw) == pytest.approx(100.0)

    def test_closing_vertex_is_ignored(self):
        assert polygon_area([(0, 0), (4, 0), (4, 3), (0, 0)]) == pytest.approx(6.0)

    def test_too_few_points(self):
        with pytest.raises(GeometryError):
            polygon_area([(0, 0), (1, 1)])

    def test_self_intersecting_is_not_repaired(self):
        # Bow-tie: the two lobes cancel in the signed sum
        bow_tie = [(0, 0), (2, 2), (2, 0), (0, 2)]
        assert polygon_area(bow_tie) == pytest.approx(0.0)


class TestPolygonCentroid:
    """Tests for polygon_centroid."""

    def test_rectangle(self):
        cx, cy = polygon_centroid([(0, 0), (20, 0), (20, 10), (0, 10)])
        assert cx == pytest.approx(10.0)
        assert cy == pytest.approx(5.0)

    def test_area_weighted_not_vertex_mean(self):
        # Extra collinear vertices pull the vertex mean but not the centroid
        points = [(0, 0), (1, 0), (2, 0), (3, 0), (10, 0), (10, 10), (0, 10)]
        cx, cy = polygon_centroid(points)
        assert cx == pytest.approx(5.0)
        assert cy == pytest.approx(5.0)

    def test_degenerate_falls_back_to_vertex_mean(self):
        cx, cy = polygon_centroid([(0, 0), (1, 0), (2, 0)])
        assert cx == pytest.approx(1.0)
        assert cy == pytest.approx(0.0)

    def test_too_few_points(self):
        with pytest.raises(GeometryError):
            polygon_centroid([(0, 0)])


class TestContains:
    """Tests for point-in-polygon."""

    @pytest.fixture
    def square(self):
        return [(0, 0), (10, 0), (10, 10), (0, 10)]

    def test_inside(self, square):
        assert contains(square, (5, 5))

    def test_outside(self, square):
        assert not contains(square, (11, 5))

    def test_boundary_counts_as_inside(self, square):
        assert contains(square, (10, 5))
        assert contains(square, (0, 0))

    def test_accepts_shapely_geometry(self):
        assert contains(box(0, 0, 1, 1), (0.5, 0.5))


class TestRectangle:
    """Tests for Rectangle and the separating-axis test."""

    def test_corners_axis_aligned(self):
        corners = Rectangle(0, 0, 8, 4).corners()
        assert corners.tolist() == [[-4, -2], [4, -2], [4, 2], [-4, 2]]

    def test_corners_rotated(self):
        corners = Rectangle(0, 0, 8, 4, angle_deg=90).corners()
        # Length now runs north-south
        xs = corners[:, 0]
        ys = corners[:, 1]
        assert xs.max() - xs.min() == pytest.approx(4.0)
        assert ys.max() - ys.min() == pytest.approx(8.0)

    def test_polygon_matches_corners(self):
        rect = Rectangle(5, 5, 10, 6, angle_deg=30)
        assert rect.polygon().area == pytest.approx(60.0)
        assert rect.polygon().centroid.x == pytest.approx(5.0)

    def test_expanded(self):
        grown = Rectangle(0, 0, 10, 6).expanded(2)
        assert (grown.length, grown.width) == (14, 10)

    def test_overlap(self):
        assert rectangles_intersect(Rectangle(0, 0, 10, 10), Rectangle(5, 5, 10, 10))

    def test_touching_is_not_intersecting(self):
        assert not rectangles_intersect(Rectangle(0, 0, 10, 10), Rectangle(10, 0, 10, 10))

    def test_overlap_within_tolerance_is_ignored(self):
        b = Rectangle(10 - EPSILON / 2, 0, 10, 10)
        assert not rectangles_intersect(Rectangle(0, 0, 10, 10), b)

    def test_rotated_overlap(self):
        a = Rectangle(0, 0, 10, 2, angle_deg=45)
        b = Rectangle(0, 0, 10, 2, angle_deg=-45)
        assert rectangles_intersect(a, b)

    def test_rotated_separated_by_own_axis(self):
        # Bounding boxes overlap but the diamonds do not
        a = Rectangle(0, 0, math.sqrt(2), math.sqrt(2), angle_deg=45)
        b = Rectangle(1.9, 1.9, math.sqrt(2), math.sqrt(2), angle_deg=45)
        assert not rectangles_intersect(a, b)

    def test_minimum_separation(self):
        assert minimum_separation(Rectangle(0, 0, 10, 10), Rectangle(15, 0, 10, 10)) == pytest.approx(5.0)
        assert minimum_separation(Rectangle(0, 0, 10, 10), Rectangle(5, 0, 10, 10)) == 0.0


class TestOffsetInward:
    """Tests for offset_inward."""

    def test_shrinks_square(self):
        shrunk = offset_inward(box(0, 0, 10, 10), 1)
        assert shrunk.area == pytest.approx(64.0)

    def test_zero_distance_is_identity(self):
        square = box(0, 0, 10, 10)
        assert offset_inward(square, 0) is square

    def test_collapse_returns_empty(self):
        assert offset_inward(box(0, 0, 2, 2), 5).is_empty

    def test_concave_may_split(self):
        # Dumbbell with a 2 m neck
        dumbbell = Polygon([(0, 0), (10, 0), (10, 4), (12, 4), (12, 0), (22, 0),
                            (22, 10), (12, 10), (12, 6), (10, 6), (10, 10), (0, 10)])
        shrunk = offset_inward(dumbbell, 1.5)
        assert shrunk.geom_type == "MultiPolygon"
