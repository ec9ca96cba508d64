"""
Planner configuration and its single resolution path.

Precedence (highest first):
    1. Per-request override
    2. Stored user default
    3. System default (PlannerConfiguration field defaults)

Solar orientation cannot be disabled: any request to do so is overridden
during resolution.
"""
import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from polyplan.services.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class OrientationStrategy(str, Enum):
    """How structure rotation angles are chosen."""
    UNIFORM = "uniform"        # One angle for the whole parcel (default)
    VARIED = "varied"          # Solar angle plus at most one alternative
    OPTIMIZED = "optimized"    # Bounded sweep inside the solar tolerance


class SolarSettings(BaseModel):
    """Solar orientation preferences."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    allowed_deviation_deg: float = Field(
        default=0.0,
        ge=0,
        le=90,
        description="Allowed deviation from the solar target (0 = auto-calculate)",
    )


class TerrainSettings(BaseModel):
    """Which restricted terrain the planner avoids."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    consider_slope: bool = True
    max_slope_deg: float = Field(default=15.0, ge=0, le=90)
    avoid_water: bool = True
    land_leveling_override: bool = False  # Allow building on steep slopes
    ignore_restricted_zones: bool = False


class OptimizationSettings(BaseModel):
    """Placement search settings."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    orientation_strategy: OrientationStrategy = OrientationStrategy.UNIFORM
    allow_infill: bool = True
    engine: str = "priority"
    sweep_step_deg: float = Field(default=5.0, gt=0, le=45)
    max_iterations: int = Field(default=200_000, ge=1)


class PlannerConfiguration(BaseModel):
    """Fully resolved configuration for one optimization run."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Base module (fixed design constant, never derived from the parcel)
    module_width: float = Field(default=8.0, gt=0, description="Module size along structure length (m)")
    module_height: float = Field(default=4.0, gt=0, description="Module size along structure width (m)")

    gutter_width: float = Field(default=2.0, ge=0, description="Drainage gutter width (m)")
    structure_gap: float = Field(default=2.0, ge=0, description="Corridor between structures (m)")
    safety_buffer: float = Field(default=0.3, ge=0, description="Inset from the parcel boundary (m)")
    min_side_length: float = Field(default=8.0, gt=0)
    max_side_length: float = Field(default=120.0, gt=0)
    min_corner_clearance: float = Field(default=4.0, ge=0, description="Clearance from parcel corners (m)")
    min_modules_per_structure: int = Field(default=10, ge=1)
    max_structure_area: float = Field(default=10_000.0, gt=0, description="Single structure limit (m²)")

    solar: SolarSettings = Field(default_factory=SolarSettings)
    terrain: TerrainSettings = Field(default_factory=TerrainSettings)
    optimization: OptimizationSettings = Field(default_factory=OptimizationSettings)

    @model_validator(mode="after")
    def check_side_lengths(self) -> "PlannerConfiguration":
        if self.min_side_length > self.max_side_length:
            raise ValueError(
                f"min_side_length ({self.min_side_length}) must not exceed "
                f"max_side_length ({self.max_side_length})"
            )
        return self

    @property
    def clearance(self) -> float:
        """Margin each footprint is expanded by for spacing checks."""
        return self.gutter_width + self.structure_gap


def _as_mapping(value: Mapping[str, Any] | BaseModel | None) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    return dict(value)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``; override wins."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _validate(data: dict[str, Any]) -> PlannerConfiguration:
    try:
        return PlannerConfiguration.model_validate(data)
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(p) for p in err['loc']) or 'configuration'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError("Invalid configuration: " + "; ".join(messages), messages) from e


def resolve_configuration(
    user_defaults: Mapping[str, Any] | BaseModel | None = None,
    override: Mapping[str, Any] | BaseModel | None = None,
    system_defaults: Optional[PlannerConfiguration] = None,
) -> PlannerConfiguration:
    """
    Merge system defaults, stored user defaults and a request override.

    Raises:
        ConfigurationError: If the merged configuration is out of range
    """
    base = (system_defaults or PlannerConfiguration()).model_dump(mode="json")
    merged = deep_merge(base, _as_mapping(user_defaults))
    merged = deep_merge(merged, _as_mapping(override))

    solar = merged.setdefault("solar", {})
    if solar.get("enabled") is False:
        logger.warning("Solar orientation cannot be disabled; forcing it on")
    solar["enabled"] = True

    return _validate(merged)


def apply_override(
    configuration: PlannerConfiguration,
    override: Mapping[str, Any] | BaseModel,
) -> PlannerConfiguration:
    """Apply a configuration delta on top of an already resolved configuration."""
    return resolve_configuration(override=override, system_defaults=configuration)


def solar_disable_requested(*sources: Mapping[str, Any] | BaseModel | None) -> bool:
    """True when any input asked to turn solar orientation off."""
    for source in sources:
        solar = _as_mapping(source).get("solar") or {}
        if isinstance(solar, Mapping) and solar.get("enabled") is False:
            return True
    return False


# =============================================================================
# Recalculation commands
# =============================================================================


class RecalculateKind(str, Enum):
    """Typed re-optimization requests produced by upstream intent parsing."""
    MAXIMIZE = "maximize"
    UNIFORM_ORIENTATION = "uniform_orientation"
    IGNORE_RESTRICTIONS = "ignore_restrictions"
    ADJUST_MIN_MODULES = "adjust_min_modules"


@dataclass(frozen=True)
class RecalculateCommand:
    """A structured recalculation request and its configuration delta."""
    kind: RecalculateKind
    min_modules: Optional[int] = None

    MIN_MODULES_RANGE = (1, 100)

    def to_override(self) -> dict[str, Any]:
        """
        Configuration delta for this command.

        Raises:
            ConfigurationError: For adjust_min_modules outside 1..100
        """
        if self.kind == RecalculateKind.MAXIMIZE:
            return {
                "structure_gap": 1.0,
                "optimization": {
                    "allow_infill": True,
                    "orientation_strategy": OrientationStrategy.OPTIMIZED.value,
                },
            }
        if self.kind == RecalculateKind.UNIFORM_ORIENTATION:
            return {
                "structure_gap": 0.5,
                "optimization": {"orientation_strategy": OrientationStrategy.UNIFORM.value},
            }
        if self.kind == RecalculateKind.IGNORE_RESTRICTIONS:
            return {"terrain": {"ignore_restricted_zones": True}}

        low, high = self.MIN_MODULES_RANGE
        if self.min_modules is None or not low <= self.min_modules <= high:
            raise ConfigurationError(
                f"adjust_min_modules requires a module count between {low} and {high}"
            )
        return {"min_modules_per_structure": self.min_modules}

    def apply(self, configuration: PlannerConfiguration) -> PlannerConfiguration:
        return apply_override(configuration, self.to_override())
