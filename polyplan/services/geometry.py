"""
Planar geometry kernel.

Pure, side-effect-free helpers over point sequences and rotated rectangles.
Coordinates are planar metres (see parcel.LocalProjection). All functions
are safe to call concurrently.

The rectangle tests use a separating-axis check so that footprints at
arbitrary rotations can be compared without building shapely geometries in
the hot path.
"""
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from shapely.affinity import rotate, translate
from shapely.geometry import Point, Polygon, box
from shapely.geometry.base import BaseGeometry

from polyplan.services.exceptions import GeometryError

# Tolerance (metres / square metres) for every length and area comparison
EPSILON = 1e-6

PointLike = Sequence[float]


def _as_array(points: Sequence[PointLike]) -> np.ndarray:
    """Convert a point sequence to an (n, 2) array, dropping a closing vertex."""
    arr = np.asarray(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise GeometryError("Points must be a sequence of (x, y) pairs")
    arr = arr[:, :2]
    if len(arr) > 1 and np.allclose(arr[0], arr[-1]):
        arr = arr[:-1]
    if len(arr) < 3:
        raise GeometryError(f"A polygon needs at least 3 points, got {len(arr)}")
    return arr


def _signed_area(arr: np.ndarray) -> float:
    x = arr[:, 0]
    y = arr[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def polygon_area(points: Sequence[PointLike]) -> float:
    """
    Area of a polygon ring using the shoelace formula.

    Self-intersecting rings are not repaired; the result is the magnitude of
    the signed shoelace sum.
    """
    return abs(_signed_area(_as_array(points)))


def polygon_centroid(points: Sequence[PointLike]) -> tuple[float, float]:
    """Area-weighted centroid of a polygon ring (vertex mean for degenerate rings)."""
    arr = _as_array(points)
    signed = _signed_area(arr)
    if abs(signed) < EPSILON:
        mean = arr.mean(axis=0)
        return float(mean[0]), float(mean[1])

    x = arr[:, 0]
    y = arr[:, 1]
    x_next = np.roll(x, -1)
    y_next = np.roll(y, -1)
    cross = x * y_next - x_next * y
    cx = float(np.sum((x + x_next) * cross) / (6.0 * signed))
    cy = float(np.sum((y + y_next) * cross) / (6.0 * signed))
    return cx, cy


def to_polygon(points: Sequence[PointLike]) -> Polygon:
    """Build a shapely Polygon from a point ring."""
    return Polygon([tuple(p) for p in _as_array(points)])


def contains(polygon: BaseGeometry | Sequence[PointLike], point: PointLike) -> bool:
    """Point-in-polygon test; points on the boundary count as contained."""
    if not isinstance(polygon, BaseGeometry):
        polygon = to_polygon(polygon)
    return bool(polygon.covers(Point(point[0], point[1])))


def offset_inward(polygon: BaseGeometry, distance: float) -> BaseGeometry:
    """
    Shrink a polygon by a uniform distance.

    Returns an empty geometry when the polygon collapses. Concave inputs may
    split into a MultiPolygon.
    """
    if distance <= 0:
        return polygon
    shrunk = polygon.buffer(-distance, join_style="mitre")
    if shrunk.is_empty or shrunk.area < EPSILON:
        return Polygon()
    return shrunk


def rotate_points(xs: np.ndarray, ys: np.ndarray, angle_deg: float) -> tuple[np.ndarray, np.ndarray]:
    """Rotate coordinates counter-clockwise about the origin."""
    theta = math.radians(angle_deg)
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    return xs * cos_t - ys * sin_t, xs * sin_t + ys * cos_t


@dataclass(frozen=True)
class Rectangle:
    """
    A rotated rectangle.

    ``length`` runs along the rotated x axis, ``width`` along the rotated y
    axis. ``angle_deg`` is measured counter-clockwise from east.
    """
    cx: float
    cy: float
    length: float
    width: float
    angle_deg: float = 0.0

    @property
    def area(self) -> float:
        return self.length * self.width

    def expanded(self, margin: float) -> "Rectangle":
        """Grow the rectangle by ``margin`` on every side."""
        return Rectangle(
            cx=self.cx,
            cy=self.cy,
            length=self.length + 2 * margin,
            width=self.width + 2 * margin,
            angle_deg=self.angle_deg,
        )

    def axes(self) -> np.ndarray:
        """Unit vectors of the rectangle's own x and y axes."""
        theta = math.radians(self.angle_deg)
        return np.array([
            [math.cos(theta), math.sin(theta)],
            [-math.sin(theta), math.cos(theta)],
        ])

    def corners(self) -> np.ndarray:
        """Corner coordinates, counter-clockwise from the local (-x, -y) corner."""
        half_l = self.length / 2
        half_w = self.width / 2
        local_x = np.array([-half_l, half_l, half_l, -half_l])
        local_y = np.array([-half_w, -half_w, half_w, half_w])
        xs, ys = rotate_points(local_x, local_y, self.angle_deg)
        return np.column_stack([xs + self.cx, ys + self.cy])

    def polygon(self) -> Polygon:
        """The rectangle as a shapely Polygon."""
        rect = box(-self.length / 2, -self.width / 2, self.length / 2, self.width / 2)
        if self.angle_deg != 0:
            rect = rotate(rect, self.angle_deg, origin=(0, 0))
        return translate(rect, self.cx, self.cy)


def rectangles_intersect(a: Rectangle, b: Rectangle, tolerance: float = EPSILON) -> bool:
    """
    Separating-axis overlap test.

    Rectangles that only touch, or overlap by less than ``tolerance``, are
    reported as not intersecting.
    """
    corners_a = a.corners()
    corners_b = b.corners()
    for axis in np.vstack([a.axes(), b.axes()]):
        proj_a = corners_a @ axis
        proj_b = corners_b @ axis
        overlap = min(proj_a.max(), proj_b.max()) - max(proj_a.min(), proj_b.min())
        if overlap <= tolerance:
            return False
    return True


def minimum_separation(a: Rectangle, b: Rectangle) -> float:
    """Shortest gap between two rectangles (0 when they intersect)."""
    if rectangles_intersect(a, b):
        return 0.0
    return float(a.polygon().distance(b.polygon()))
