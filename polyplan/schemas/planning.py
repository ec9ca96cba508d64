"""
Pydantic schemas for Planning API endpoints.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from polyplan.schemas.zone import LandArea, TerrainInput, ZoneInput
from polyplan.services.configuration import OrientationStrategy, RecalculateKind


# =============================================================================
# Configuration overrides (every field optional; unset fields fall through)
# =============================================================================


class SolarOverride(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = Field(None, description="Ignored: solar orientation is always on")
    allowed_deviation_deg: Optional[float] = None


class TerrainOverride(BaseModel):
    model_config = ConfigDict(extra="forbid")

    consider_slope: Optional[bool] = None
    max_slope_deg: Optional[float] = None
    avoid_water: Optional[bool] = None
    land_leveling_override: Optional[bool] = None
    ignore_restricted_zones: Optional[bool] = None


class OptimizationOverride(BaseModel):
    model_config = ConfigDict(extra="forbid")

    orientation_strategy: Optional[OrientationStrategy] = None
    allow_infill: Optional[bool] = None
    engine: Optional[str] = None
    sweep_step_deg: Optional[float] = None
    max_iterations: Optional[int] = None


class ConfigurationOverride(BaseModel):
    """
    Per-request configuration delta.

    Range checks happen when the override is merged into the resolved
    configuration, so out-of-range values surface as configuration errors.
    """
    model_config = ConfigDict(extra="forbid")

    module_width: Optional[float] = None
    module_height: Optional[float] = None
    gutter_width: Optional[float] = None
    structure_gap: Optional[float] = None
    safety_buffer: Optional[float] = None
    min_side_length: Optional[float] = None
    max_side_length: Optional[float] = None
    min_corner_clearance: Optional[float] = None
    min_modules_per_structure: Optional[int] = None
    max_structure_area: Optional[float] = None
    solar: Optional[SolarOverride] = None
    terrain: Optional[TerrainOverride] = None
    optimization: Optional[OptimizationOverride] = None


# =============================================================================
# Requests
# =============================================================================


class CreatePlanRequest(BaseModel):
    """Request schema for creating a plan."""

    land_area: LandArea
    zones: list[ZoneInput] = Field(default_factory=list)
    terrain: Optional[TerrainInput] = None
    configuration: Optional[ConfigurationOverride] = None

    def inputs_dict(self) -> dict[str, Any]:
        """Geographic inputs in the PlanningInputs layout."""
        return self.model_dump(mode="json", exclude={"configuration"})


class RecalculateRequest(BaseModel):
    """Typed re-optimization request."""

    command: RecalculateKind
    min_modules: Optional[int] = Field(
        None,
        description="New module floor (adjust_min_modules only, 1-100)",
    )


# =============================================================================
# Responses
# =============================================================================


class LatLng(BaseModel):
    lat: float
    lng: float


class ModuleResponse(BaseModel):
    row: int
    column: int
    offset_x: float
    offset_y: float
    width: float
    height: float


class StructureResponse(BaseModel):
    """A placed polyhouse."""
    id: str
    label: str
    center: LatLng
    local_center: dict[str, float]
    rotation_deg: float
    length: float
    width: float
    outer_area: float
    inner_area: float
    perimeter: float
    module_count: int
    modules: list[ModuleResponse]
    corners: list[LatLng]
    placement_pass: str


class UnbuildableRegionResponse(BaseModel):
    reason: str
    affected_area: float
    location_sample: Optional[LatLng] = None


class PlacementMetadataResponse(BaseModel):
    structure_count: int
    total_inner_area: float
    total_outer_area: float
    parcel_area: float
    buildable_area: float
    buildable_fraction: float
    utilization_percentage: float
    computation_time_ms: float
    primary_angle_deg: float
    secondary_angles_deg: list[float]
    engine: str
    iterations: int
    unbuildable_regions: list[UnbuildableRegionResponse]
    constraint_violations: list[str]


class PlacementResultResponse(BaseModel):
    structures: list[StructureResponse]
    metadata: PlacementMetadataResponse
    warnings: list[str]
    errors: list[str]


class PlanResponse(BaseModel):
    """A stored plan."""
    result_id: str
    result: PlacementResultResponse
    configuration: dict[str, Any]


class PlanningJobResponse(BaseModel):
    """Status of a background planning job."""
    job_id: str
    status: str
    progress_pct: int
    result_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: str


class EngineInfo(BaseModel):
    """A registered placement engine."""
    name: str
    description: str
    default: bool = False


class ParsedParcelResponse(BaseModel):
    """Parcel read from an uploaded KML/KMZ file."""
    land_area: LandArea
    zones: list[ZoneInput]
    area: float
