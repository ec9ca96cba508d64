"""
Buildable-region resolution.

Intersects the parcel with the safety buffer, corner clearances, user zones
and terrain restrictions to produce the region eligible for construction.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from polyplan.services.configuration import PlannerConfiguration, TerrainSettings
from polyplan.services.exceptions import TerrainBlockedError
from polyplan.services.geometry import EPSILON, offset_inward
from polyplan.services.parcel import (
    LandParcel,
    RestrictedArea,
    RestrictedAreaType,
    Severity,
    TerrainAnalysis,
    Zone,
    ZoneKind,
)

logger = logging.getLogger(__name__)

# Below this buildable fraction planning is refused
MIN_BUILDABLE_FRACTION = 0.10

# Restriction types that are always avoided (unless restrictions are ignored)
ALWAYS_AVOIDED = {
    RestrictedAreaType.FOREST,
    RestrictedAreaType.ROAD,
    RestrictedAreaType.BUILT_UP,
    RestrictedAreaType.VEGETATION,
}

AVOIDED_SEVERITIES = {Severity.PROHIBITED, Severity.CHALLENGING}


@dataclass(frozen=True)
class Exclusion:
    """Area removed from the parcel and why."""
    reason: str
    affected_area: float


@dataclass(frozen=True)
class BuildableRegion:
    """Read-only result of buildable-region resolution."""
    geometry: BaseGeometry
    parcel_area: float
    exclusions: tuple[Exclusion, ...] = ()
    notes: tuple[str, ...] = ()
    reported_fraction: Optional[float] = None

    @property
    def area(self) -> float:
        return float(self.geometry.area)

    @property
    def polygons(self) -> list[Polygon]:
        """The region as a list of simple polygons."""
        if self.geometry.is_empty:
            return []
        if isinstance(self.geometry, Polygon):
            return [self.geometry]
        if isinstance(self.geometry, MultiPolygon):
            return list(self.geometry.geoms)
        return [g for g in getattr(self.geometry, "geoms", []) if isinstance(g, Polygon)]

    @property
    def buildable_fraction(self) -> float:
        if self.parcel_area <= 0:
            return 0.0
        fraction = self.area / self.parcel_area
        if self.reported_fraction is not None:
            fraction = min(fraction, self.reported_fraction)
        return fraction


def is_avoided(area: RestrictedArea, terrain: TerrainSettings) -> bool:
    """Whether a restricted area must be subtracted under the terrain settings."""
    if terrain.ignore_restricted_zones:
        return False
    if area.severity not in AVOIDED_SEVERITIES:
        return False
    if area.type in (RestrictedAreaType.WATER, RestrictedAreaType.WETLAND):
        return terrain.avoid_water
    if area.type == RestrictedAreaType.STEEP_SLOPE:
        return terrain.consider_slope and not terrain.land_leveling_override
    return area.type in ALWAYS_AVOIDED


def _corner_discs(parcel_polygon: Polygon, radius: float) -> BaseGeometry:
    corners = list(parcel_polygon.exterior.coords)[:-1]
    return unary_union([Point(x, y).buffer(radius) for x, y in corners])


def _polygonal(geometry: BaseGeometry) -> BaseGeometry:
    """Drop lines/points left over from set operations."""
    if geometry.is_empty or isinstance(geometry, (Polygon, MultiPolygon)):
        return geometry
    parts = [g for g in getattr(geometry, "geoms", []) if isinstance(g, Polygon) and g.area > EPSILON]
    return MultiPolygon(parts) if parts else Polygon()


def resolve_buildable_region(
    parcel: LandParcel,
    config: PlannerConfiguration,
    zones: Sequence[Zone] = (),
    terrain: Optional[TerrainAnalysis] = None,
    min_fraction: float = MIN_BUILDABLE_FRACTION,
) -> BuildableRegion:
    """
    Compute the buildable region of a parcel.

    Args:
        parcel: Land parcel
        config: Resolved configuration (safety buffer, corner clearance, terrain flags)
        zones: Optional user inclusion/exclusion zones
        terrain: Optional precomputed terrain analysis
        min_fraction: Minimum buildable fraction before planning is refused

    Returns:
        BuildableRegion

    Raises:
        TerrainBlockedError: If the buildable fraction is below ``min_fraction``
    """
    projection = parcel.projection
    parcel_polygon = parcel.polygon
    exclusions: list[Exclusion] = []
    notes: list[str] = []

    # 1. Safety buffer
    region = offset_inward(parcel_polygon, config.safety_buffer)

    # 2. Corner clearance
    if config.min_corner_clearance > 0 and not region.is_empty:
        region = region.difference(_corner_discs(parcel_polygon, config.min_corner_clearance))
    # Inclusion zones may restore avoided area but never buffer or corner clearance
    admissible = region

    # 3. Exclusion zones
    exclusion_polys = [
        z.planar_polygon(projection) for z in zones if z.kind == ZoneKind.EXCLUSION
    ]
    exclusion_polys = [p for p in exclusion_polys if not p.is_empty]
    if exclusion_polys:
        excluded = unary_union(exclusion_polys)
        affected = region.intersection(excluded).area
        region = region.difference(excluded)
        exclusions.append(Exclusion(reason="User exclusion zones", affected_area=affected))

    # 4. Terrain restrictions
    if terrain is not None:
        for restricted in terrain.restricted_areas:
            if not is_avoided(restricted, config.terrain):
                continue
            poly = restricted.planar_polygon(projection)
            if poly is None:
                continue
            affected = region.intersection(poly).area
            if affected <= EPSILON:
                continue
            region = region.difference(poly)
            exclusions.append(Exclusion(reason=restricted.reason, affected_area=affected))

    # 5. Inclusion zones carve avoided sub-areas back in, never outside the parcel
    for zone in zones:
        if zone.kind != ZoneKind.INCLUSION:
            continue
        poly = zone.planar_polygon(projection)
        if poly.is_empty:
            continue
        if not parcel_polygon.buffer(EPSILON).covers(poly):
            label = zone.name or "Inclusion zone"
            notes.append(f"{label} extends outside the parcel and was ignored")
            logger.warning(f"{label} extends outside the parcel boundary; ignoring")
            continue
        region = region.union(poly.intersection(admissible))

    region = _polygonal(region)

    reported_fraction = None
    if terrain is not None and terrain.buildable_area_m2 is not None and parcel.area_m2 > 0:
        reported_fraction = terrain.buildable_area_m2 / parcel.area_m2

    result = BuildableRegion(
        geometry=region,
        parcel_area=parcel.area_m2,
        exclusions=tuple(exclusions),
        notes=tuple(notes),
        reported_fraction=reported_fraction,
    )

    fraction = result.buildable_fraction
    logger.info(
        f"Buildable region: {result.area:.0f} of {parcel.area_m2:.0f} sqm "
        f"({fraction * 100:.1f}%), {len(exclusions)} exclusion(s)"
    )

    if fraction < min_fraction:
        raise TerrainBlockedError(buildable_fraction=fraction, threshold=min_fraction)

    return result
