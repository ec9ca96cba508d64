"""
Land parcel, zones and terrain input types.

Geographic inputs are (lat, lng) pairs. Everything downstream works in a
local planar frame (metres east/north of the parcel's vertex mean) produced
by LocalProjection.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from shapely.geometry import Polygon

from polyplan.services.exceptions import InvalidParcelError
from polyplan.services.geometry import polygon_area, polygon_centroid

# Metres per degree of latitude (equirectangular approximation)
METERS_PER_DEGREE = 111320.0


@dataclass(frozen=True)
class GeoPoint:
    """A geographic coordinate."""
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class LocalProjection:
    """Equirectangular projection centred on an origin point."""
    origin_lat: float
    origin_lng: float

    @property
    def _lng_scale(self) -> float:
        return METERS_PER_DEGREE * math.cos(math.radians(self.origin_lat))

    def project(self, point: GeoPoint) -> tuple[float, float]:
        x = (point.lng - self.origin_lng) * self._lng_scale
        y = (point.lat - self.origin_lat) * METERS_PER_DEGREE
        return x, y

    def unproject(self, x: float, y: float) -> GeoPoint:
        return GeoPoint(
            lat=self.origin_lat + y / METERS_PER_DEGREE,
            lng=self.origin_lng + x / self._lng_scale,
        )

    def project_ring(self, points: Iterable[GeoPoint]) -> list[tuple[float, float]]:
        return [self.project(p) for p in points]


def _to_geopoints(coordinates: Iterable) -> list[GeoPoint]:
    points = []
    for coord in coordinates:
        if isinstance(coord, GeoPoint):
            points.append(coord)
        elif isinstance(coord, dict):
            points.append(GeoPoint(lat=float(coord["lat"]), lng=float(coord["lng"])))
        else:
            lat, lng = coord[0], coord[1]
            points.append(GeoPoint(lat=float(lat), lng=float(lng)))
    return points


def close_ring(points: Sequence[GeoPoint]) -> tuple[GeoPoint, ...]:
    """Return the ring with the first point repeated at the end if needed."""
    if points and points[0] != points[-1]:
        return tuple(points) + (points[0],)
    return tuple(points)


@dataclass(frozen=True)
class LandParcel:
    """
    Immutable land parcel for one planning run.

    Use ``LandParcel.from_coordinates`` to build one; it closes the ring,
    projects it and computes area and centroid.
    """
    name: str
    ring: tuple[GeoPoint, ...]
    projection: LocalProjection
    planar_ring: tuple[tuple[float, float], ...]
    area_m2: float
    centroid: GeoPoint

    @classmethod
    def from_coordinates(cls, coordinates: Iterable, name: str = "Land parcel") -> "LandParcel":
        """
        Build a parcel from (lat, lng) pairs, dicts or GeoPoints.

        Raises:
            InvalidParcelError: Fewer than 3 distinct points, or zero area
        """
        points = _to_geopoints(coordinates)
        distinct = list(dict.fromkeys(points))
        if len(distinct) < 3:
            raise InvalidParcelError(
                f"Invalid land area. At least 3 coordinates required, got {len(distinct)}."
            )

        ring = close_ring(points)
        open_ring = ring[:-1]
        origin = LocalProjection(
            origin_lat=sum(p.lat for p in open_ring) / len(open_ring),
            origin_lng=sum(p.lng for p in open_ring) / len(open_ring),
        )
        planar = tuple(origin.project_ring(ring))
        area = polygon_area(planar)
        if area <= 0:
            raise InvalidParcelError("Invalid land area. Boundary encloses no area.")

        cx, cy = polygon_centroid(planar)
        return cls(
            name=name,
            ring=ring,
            projection=origin,
            planar_ring=planar,
            area_m2=area,
            centroid=origin.unproject(cx, cy),
        )

    @property
    def latitude(self) -> float:
        """Latitude used for solar orientation."""
        return self.centroid.lat

    @property
    def polygon(self) -> Polygon:
        """Planar polygon of the parcel (repaired if self-intersecting)."""
        poly = Polygon(self.planar_ring)
        if not poly.is_valid:
            poly = poly.buffer(0)
        return poly

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "coordinates": [p.to_dict() for p in self.ring],
            "area": self.area_m2,
            "centroid": self.centroid.to_dict(),
        }


class ZoneKind(str, Enum):
    """User-drawn zone types."""
    INCLUSION = "inclusion"
    EXCLUSION = "exclusion"


@dataclass(frozen=True)
class Zone:
    """A user-supplied inclusion or exclusion polygon."""
    kind: ZoneKind
    coordinates: tuple[GeoPoint, ...]
    name: Optional[str] = None

    @classmethod
    def from_coordinates(cls, kind: ZoneKind | str, coordinates: Iterable, name: Optional[str] = None) -> "Zone":
        return cls(kind=ZoneKind(kind), coordinates=close_ring(_to_geopoints(coordinates)), name=name)

    def planar_polygon(self, projection: LocalProjection) -> Polygon:
        poly = Polygon(projection.project_ring(self.coordinates))
        if not poly.is_valid:
            poly = poly.buffer(0)
        return poly


class RestrictedAreaType(str, Enum):
    """Terrain restriction categories reported by terrain analysis."""
    WATER = "water"
    WETLAND = "wetland"
    STEEP_SLOPE = "steep_slope"
    FOREST = "forest"
    ROAD = "road"
    BUILT_UP = "built_up"
    VEGETATION = "vegetation"


class Severity(str, Enum):
    """How strongly a restricted area prohibits construction."""
    PROHIBITED = "prohibited"
    CHALLENGING = "challenging"
    WARNING = "warning"


@dataclass(frozen=True)
class RestrictedArea:
    """A restricted zone supplied by terrain/compliance analysis."""
    type: RestrictedAreaType
    reason: str
    coordinates: tuple[GeoPoint, ...] = ()
    severity: Severity = Severity.PROHIBITED
    area_m2: Optional[float] = None

    @classmethod
    def from_coordinates(
        cls,
        type: RestrictedAreaType | str,
        reason: str,
        coordinates: Iterable = (),
        severity: Severity | str = Severity.PROHIBITED,
        area_m2: Optional[float] = None,
    ) -> "RestrictedArea":
        points = _to_geopoints(coordinates)
        return cls(
            type=RestrictedAreaType(type),
            reason=reason,
            coordinates=close_ring(points) if points else (),
            severity=Severity(severity),
            area_m2=area_m2,
        )

    def planar_polygon(self, projection: LocalProjection) -> Optional[Polygon]:
        """Planar polygon, or None when the zone carries no usable outline."""
        if len(set(self.coordinates)) < 3:
            return None
        poly = Polygon(projection.project_ring(self.coordinates))
        if not poly.is_valid:
            poly = poly.buffer(0)
        return poly if not poly.is_empty else None


@dataclass(frozen=True)
class TerrainAnalysis:
    """Precomputed terrain/compliance input for a parcel."""
    buildable_area_m2: Optional[float] = None
    restricted_areas: tuple[RestrictedArea, ...] = field(default_factory=tuple)
    average_slope_deg: Optional[float] = None
    elevation_range_m: Optional[tuple[float, float]] = None
    warnings: tuple[str, ...] = field(default_factory=tuple)
