"""
Placement post-processing.

Turns raw engine placements into the PlacementResult handed to pricing:
per-structure dimensions and modules, totals, utilization, unbuildable-region
diagnostics, terrain warnings and a final constraint re-check.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np
import shapely
from shapely.geometry import mapping
from shapely.strtree import STRtree

from polyplan.services.block_grid import same_angle
from polyplan.services.buildable_region import BuildableRegion
from polyplan.services.candidates import INFILL_MIN_MODULES
from polyplan.services.configuration import PlannerConfiguration
from polyplan.services.geometry import EPSILON, Rectangle, rectangles_intersect
from polyplan.services.orientation import OrientationPlan
from polyplan.services.parcel import (
    GeoPoint,
    LandParcel,
    LocalProjection,
    RestrictedAreaType,
    TerrainAnalysis,
)
from polyplan.services.placement_engine import Placement, PlacementOutcome, PlacementPass

logger = logging.getLogger(__name__)

LOW_UTILIZATION_PCT = 30.0
IRREGULAR_SHAPE_UTILIZATION_PCT = 70.0
SAFETY_BUFFER_SHARE = 0.05

NO_STRUCTURES_ERROR = (
    "No polyhouses could be placed. The land area may be too small or constraints too restrictive."
)
LOW_UTILIZATION_WARNING = (
    "Low space utilization. Consider adjusting constraints or land shape for better coverage."
)


@dataclass(frozen=True)
class Module:
    """One base module inside a structure, offsets from the structure centre."""
    row: int
    column: int
    offset_x: float
    offset_y: float
    width: float
    height: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "column": self.column,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class PlacedStructure:
    """A committed polyhouse in both planar and geographic coordinates."""
    index: int
    label: str
    rectangle: Rectangle
    center: GeoPoint
    corners: tuple[GeoPoint, ...]
    module_count_x: int
    module_count_y: int
    outer_area: float
    inner_area: float
    perimeter: float
    modules: tuple[Module, ...]
    placement_pass: PlacementPass

    @property
    def id(self) -> str:
        return f"polyhouse-{self.index + 1}"

    @property
    def length(self) -> float:
        return self.rectangle.length

    @property
    def width(self) -> float:
        return self.rectangle.width

    @property
    def rotation_deg(self) -> float:
        return self.rectangle.angle_deg

    @property
    def module_count(self) -> int:
        return self.module_count_x * self.module_count_y

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "center": self.center.to_dict(),
            "local_center": {"x": self.rectangle.cx, "y": self.rectangle.cy},
            "rotation_deg": self.rotation_deg,
            "length": self.length,
            "width": self.width,
            "outer_area": self.outer_area,
            "inner_area": self.inner_area,
            "perimeter": self.perimeter,
            "module_count": self.module_count,
            "modules": [m.to_dict() for m in self.modules],
            "corners": [c.to_dict() for c in self.corners],
            "placement_pass": self.placement_pass.value,
        }


@dataclass(frozen=True)
class UnbuildableRegion:
    """Diagnostic entry explaining area that could not be used."""
    reason: str
    affected_area: float
    location_sample: Optional[GeoPoint] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"reason": self.reason, "affected_area": self.affected_area}
        if self.location_sample is not None:
            data["location_sample"] = self.location_sample.to_dict()
        return data


@dataclass(frozen=True)
class PlacementResult:
    """Outcome of one optimization run."""
    structures: tuple[PlacedStructure, ...]
    parcel_area: float
    buildable_area: float
    buildable_fraction: float
    utilization_percentage: float
    computation_time_ms: float
    primary_angle_deg: float
    secondary_angles_deg: tuple[float, ...] = ()
    unbuildable_regions: tuple[UnbuildableRegion, ...] = ()
    constraint_violations: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    engine: str = ""
    iterations: int = 0
    parcel_ring: tuple[GeoPoint, ...] = field(default=(), repr=False)

    @property
    def total_outer_area(self) -> float:
        return sum(s.outer_area for s in self.structures)

    @property
    def total_inner_area(self) -> float:
        return sum(s.inner_area for s in self.structures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "structures": [s.to_dict() for s in self.structures],
            "metadata": {
                "structure_count": len(self.structures),
                "total_inner_area": self.total_inner_area,
                "total_outer_area": self.total_outer_area,
                "parcel_area": self.parcel_area,
                "buildable_area": self.buildable_area,
                "buildable_fraction": self.buildable_fraction,
                "utilization_percentage": self.utilization_percentage,
                "computation_time_ms": self.computation_time_ms,
                "primary_angle_deg": self.primary_angle_deg,
                "secondary_angles_deg": list(self.secondary_angles_deg),
                "engine": self.engine,
                "iterations": self.iterations,
                "unbuildable_regions": [r.to_dict() for r in self.unbuildable_regions],
                "constraint_violations": list(self.constraint_violations),
            },
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }

    def pricing_quantities(self) -> list[dict[str, Any]]:
        """Per-structure quantities consumed by the pricing roll-up."""
        return [
            {
                "id": s.id,
                "outer_area": s.outer_area,
                "inner_area": s.inner_area,
                "perimeter": s.perimeter,
                "module_count": s.module_count,
            }
            for s in self.structures
        ]

    def to_geojson_feature_collection(self) -> dict[str, Any]:
        """
        Structures (and the parcel outline) as a GeoJSON FeatureCollection.

        Coordinates are [lng, lat] as GeoJSON requires.
        """
        features = []

        if self.parcel_ring:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[[p.lng, p.lat] for p in self.parcel_ring]],
                },
                "properties": {"feature_type": "parcel", "area": self.parcel_area},
            })

        for structure in self.structures:
            ring = [[c.lng, c.lat] for c in structure.corners]
            ring.append(ring[0])
            features.append({
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [ring]},
                "properties": {
                    "feature_type": "polyhouse",
                    "id": structure.id,
                    "label": structure.label,
                    "length": structure.length,
                    "width": structure.width,
                    "outer_area": structure.outer_area,
                    "inner_area": structure.inner_area,
                    "module_count": structure.module_count,
                    "rotation_deg": structure.rotation_deg,
                    "placement_pass": structure.placement_pass.value,
                },
            })
            features.append({
                "type": "Feature",
                "geometry": mapping(shapely.Point(structure.center.lng, structure.center.lat)),
                "properties": {"feature_type": "label", "label": structure.label},
            })

        return {"type": "FeatureCollection", "features": features}


# =============================================================================
# Building structures
# =============================================================================


def _modules(placement: Placement, config: PlannerConfiguration) -> tuple[Module, ...]:
    rect = placement.rectangle
    modules = []
    for row in range(placement.candidate.module_count_y):
        for column in range(placement.candidate.module_count_x):
            modules.append(Module(
                row=row,
                column=column,
                offset_x=-rect.length / 2 + column * config.module_width,
                offset_y=-rect.width / 2 + row * config.module_height,
                width=config.module_width,
                height=config.module_height,
            ))
    return tuple(modules)


def build_structure(
    index: int,
    placement: Placement,
    config: PlannerConfiguration,
    projection: LocalProjection,
) -> PlacedStructure:
    """Derive areas, modules and geographic coordinates for one placement."""
    rect = placement.rectangle
    gutter = config.gutter_width
    inner = max(0.0, rect.length - gutter) * max(0.0, rect.width - gutter)
    return PlacedStructure(
        index=index,
        label=f"P{index + 1}",
        rectangle=rect,
        center=projection.unproject(rect.cx, rect.cy),
        corners=tuple(projection.unproject(float(x), float(y)) for x, y in rect.corners()),
        module_count_x=placement.candidate.module_count_x,
        module_count_y=placement.candidate.module_count_y,
        outer_area=rect.area,
        inner_area=inner,
        perimeter=2 * (rect.length + rect.width),
        modules=_modules(placement, config),
        placement_pass=placement.placement_pass,
    )


# =============================================================================
# Diagnostics
# =============================================================================


def find_constraint_violations(
    structures: Sequence[PlacedStructure],
    region: BuildableRegion,
    config: PlannerConfiguration,
) -> list[str]:
    """
    Re-check overlap, containment and sizing for a finished layout.

    Returns:
        Human-readable description of every breach (empty when valid)
    """
    violations: list[str] = []
    if not structures:
        return violations

    # Sizing
    for s in structures:
        floor = INFILL_MIN_MODULES if s.placement_pass == PlacementPass.INFILL else config.min_modules_per_structure
        whole_x = abs(s.length / config.module_width - round(s.length / config.module_width)) < EPSILON
        whole_y = abs(s.width / config.module_height - round(s.width / config.module_height)) < EPSILON
        if not (whole_x and whole_y):
            violations.append(f"{s.label}: dimensions are not whole modules")
        if s.module_count < floor:
            violations.append(f"{s.label}: {s.module_count} modules is below the minimum of {floor}")
        if s.outer_area > config.max_structure_area + EPSILON:
            violations.append(f"{s.label}: area {s.outer_area:.0f} sqm exceeds {config.max_structure_area:.0f} sqm")
        if max(s.length, s.width) > config.max_side_length + EPSILON:
            violations.append(f"{s.label}: side exceeds {config.max_side_length:.0f} m")
        if min(s.length, s.width) < config.min_side_length - EPSILON:
            violations.append(f"{s.label}: side below {config.min_side_length:.0f} m")

    # Containment
    footprints = [s.rectangle.polygon() for s in structures]
    region_geom = region.geometry.buffer(1e-4)
    inside = np.asarray(shapely.covers(region_geom, footprints), dtype=bool)
    for s, ok in zip(structures, inside):
        if not ok:
            violations.append(f"{s.label}: footprint extends outside the buildable region")

    # Spacing
    clearance = config.clearance
    expanded = [s.rectangle.expanded(clearance) for s in structures]
    tree = STRtree([r.polygon() for r in expanded])
    left, right = tree.query([r.polygon() for r in expanded], predicate="intersects")
    for i, j in zip(left, right):
        if i >= j:
            continue
        if rectangles_intersect(expanded[i], expanded[j]):
            violations.append(
                f"{structures[i].label} and {structures[j].label} are closer than "
                f"the required {2 * clearance:.1f} m clearance"
            )

    return violations


def _terrain_warnings(terrain: Optional[TerrainAnalysis]) -> list[str]:
    if terrain is None:
        return []
    counts: dict[RestrictedAreaType, int] = {}
    for area in terrain.restricted_areas:
        counts[area.type] = counts.get(area.type, 0) + 1

    warnings = []
    water = counts.get(RestrictedAreaType.WATER, 0) + counts.get(RestrictedAreaType.WETLAND, 0)
    if water:
        warnings.append(f"{water} water body zone(s) detected and avoided")
    if counts.get(RestrictedAreaType.FOREST):
        warnings.append(f"{counts[RestrictedAreaType.FOREST]} forest area(s) detected and avoided")
    if counts.get(RestrictedAreaType.STEEP_SLOPE):
        warnings.append(f"{counts[RestrictedAreaType.STEEP_SLOPE]} steep slope zone(s) detected")
    if counts.get(RestrictedAreaType.ROAD):
        warnings.append(f"{counts[RestrictedAreaType.ROAD]} road(s) detected and avoided")
    warnings.extend(terrain.warnings)
    return warnings


def build_placement_result(
    parcel: LandParcel,
    region: BuildableRegion,
    outcome: PlacementOutcome,
    orientation: OrientationPlan,
    config: PlannerConfiguration,
    terrain: Optional[TerrainAnalysis] = None,
    computation_time_ms: float = 0.0,
    engine: str = "",
    extra_warnings: Sequence[str] = (),
) -> PlacementResult:
    """
    Assemble the PlacementResult for a finished engine run.

    Args:
        parcel: Land parcel
        region: Buildable region the engine filled
        outcome: Raw engine output
        orientation: Orientation used
        config: Resolved configuration
        terrain: Optional terrain input (for terrain warnings)
        computation_time_ms: Wall time of the run
        engine: Engine name
        extra_warnings: Warnings raised before placement (forced overrides etc.)

    Returns:
        PlacementResult
    """
    structures = tuple(
        build_structure(i, placement, config, parcel.projection)
        for i, placement in enumerate(outcome.placements)
    )
    parcel_area = parcel.area_m2
    total_outer = sum(s.outer_area for s in structures)
    utilization = (total_outer / parcel_area * 100) if parcel_area > 0 else 0.0

    warnings: list[str] = list(extra_warnings)
    warnings.extend(region.notes)
    warnings.extend(_terrain_warnings(terrain))
    warnings.extend(outcome.warnings)
    errors: list[str] = []

    if not structures:
        errors.append(NO_STRUCTURES_ERROR)
    if utilization < LOW_UTILIZATION_PCT:
        warnings.append(LOW_UTILIZATION_WARNING)

    unbuildable = [
        UnbuildableRegion(
            reason="Safety buffer from land boundary",
            affected_area=parcel_area * SAFETY_BUFFER_SHARE,
            location_sample=parcel.ring[0] if parcel.ring else None,
        )
    ]
    unbuildable.extend(
        UnbuildableRegion(reason=e.reason, affected_area=e.affected_area) for e in region.exclusions
    )
    if utilization < IRREGULAR_SHAPE_UTILIZATION_PCT:
        accounted = sum(r.affected_area for r in unbuildable)
        unbuildable.append(UnbuildableRegion(
            reason="Irregular polygon shape and spacing constraints",
            affected_area=max(0.0, parcel_area - total_outer - accounted),
        ))

    violations = find_constraint_violations(structures, region, config)
    for violation in violations:
        logger.error(f"Constraint violation: {violation}")

    logger.info(
        f"Placed {len(structures)} structure(s), {total_outer:.0f} sqm "
        f"({utilization:.1f}% of parcel) in {computation_time_ms:.0f} ms"
    )

    return PlacementResult(
        structures=structures,
        parcel_area=parcel_area,
        buildable_area=region.area,
        buildable_fraction=region.buildable_fraction,
        utilization_percentage=utilization,
        computation_time_ms=computation_time_ms,
        primary_angle_deg=orientation.primary_angle_deg,
        secondary_angles_deg=tuple(
            angle for angle in orientation.secondary_angles_deg
            if any(
                p.placement_pass == PlacementPass.SECONDARY and same_angle(p.rectangle.angle_deg, angle)
                for p in outcome.placements
            )
        ),
        unbuildable_regions=tuple(unbuildable),
        constraint_violations=tuple(violations),
        warnings=tuple(warnings),
        errors=tuple(errors),
        engine=engine,
        iterations=outcome.iterations,
        parcel_ring=parcel.ring,
    )
