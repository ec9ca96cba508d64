"""
Planning orchestration.

``plan_layout`` is the synchronous, pure pipeline:

    parcel + zones + terrain + configuration
        -> buildable region -> candidate catalog -> orientation
        -> placement engine -> post-processing -> PlacementResult

``PlanningService`` wraps it for the API: it resolves configuration, runs
the pipeline in a worker thread under a deadline, content-addresses the
inputs and keeps the result in a ResultStore.
"""
import asyncio
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel

from polyplan.services.buildable_region import resolve_buildable_region
from polyplan.services.candidates import build_candidate_catalog
from polyplan.services.configuration import (
    PlannerConfiguration,
    RecalculateCommand,
    resolve_configuration,
    solar_disable_requested,
)
from polyplan.services.exceptions import PlanNotFoundError
from polyplan.services.orientation import SolarPolicy, select_orientation
from polyplan.services.parcel import LandParcel, RestrictedArea, TerrainAnalysis, Zone
from polyplan.services.placement_engine import (
    PlacementBudget,
    PlacementEngine,
    ProgressCallback,
    get_placement_engine,
)
from polyplan.services.placement_result import PlacementResult, build_placement_result
from polyplan.services.result_store import ResultStore, StoredPlan

logger = logging.getLogger(__name__)

SOLAR_FORCED_WARNING = (
    "Solar orientation is always applied; the request to disable it was ignored"
)


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class PlanningInputs:
    """Geographic inputs of a run (everything except configuration)."""
    parcel: LandParcel
    zones: tuple[Zone, ...] = ()
    terrain: Optional[TerrainAnalysis] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlanningInputs":
        """
        Build inputs from the request/record layout.

        Expected keys: ``land_area`` {name, coordinates}, optional ``zones``
        [{kind, name, coordinates}] and ``terrain`` {buildable_area,
        restricted_zones, average_slope, elevation_range, warnings}.

        Raises:
            InvalidParcelError: If the land area cannot form a polygon
        """
        land = data["land_area"]
        parcel = LandParcel.from_coordinates(
            land["coordinates"], name=land.get("name") or "Land parcel"
        )
        zones = tuple(
            Zone.from_coordinates(z["kind"], z["coordinates"], name=z.get("name"))
            for z in data.get("zones") or []
        )
        terrain = None
        raw_terrain = data.get("terrain")
        if raw_terrain:
            elevation = raw_terrain.get("elevation_range")
            terrain = TerrainAnalysis(
                buildable_area_m2=raw_terrain.get("buildable_area"),
                restricted_areas=tuple(
                    RestrictedArea.from_coordinates(
                        type=r["type"],
                        reason=r["reason"],
                        coordinates=r.get("coordinates") or (),
                        severity=r.get("severity") or "prohibited",
                        area_m2=r.get("area"),
                    )
                    for r in raw_terrain.get("restricted_zones") or []
                ),
                average_slope_deg=raw_terrain.get("average_slope"),
                elevation_range_m=tuple(elevation) if elevation else None,
                warnings=tuple(raw_terrain.get("warnings") or ()),
            )
        return cls(parcel=parcel, zones=zones, terrain=terrain)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "land_area": {
                "name": self.parcel.name,
                "coordinates": [p.to_dict() for p in self.parcel.ring],
            },
            "zones": [
                {
                    "kind": z.kind.value,
                    "name": z.name,
                    "coordinates": [p.to_dict() for p in z.coordinates],
                }
                for z in self.zones
            ],
            "terrain": None,
        }
        if self.terrain is not None:
            t = self.terrain
            data["terrain"] = {
                "buildable_area": t.buildable_area_m2,
                "restricted_zones": [
                    {
                        "type": r.type.value,
                        "reason": r.reason,
                        "coordinates": [p.to_dict() for p in r.coordinates],
                        "severity": r.severity.value,
                        "area": r.area_m2,
                    }
                    for r in t.restricted_areas
                ],
                "average_slope": t.average_slope_deg,
                "elevation_range": list(t.elevation_range_m) if t.elevation_range_m else None,
                "warnings": list(t.warnings),
            }
        return data


def content_address(inputs: PlanningInputs, configuration: PlannerConfiguration) -> str:
    """SHA-256 of the canonical JSON of inputs plus resolved configuration."""
    canonical = json.dumps(
        {"inputs": inputs.to_dict(), "configuration": configuration.model_dump(mode="json")},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# =============================================================================
# Pipeline
# =============================================================================


def plan_layout(
    parcel: LandParcel,
    config: PlannerConfiguration,
    zones: Sequence[Zone] = (),
    terrain: Optional[TerrainAnalysis] = None,
    *,
    engine: Optional[PlacementEngine] = None,
    solar_policy: Optional[SolarPolicy] = None,
    deadline: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    progress: Optional[ProgressCallback] = None,
    extra_warnings: Sequence[str] = (),
) -> PlacementResult:
    """
    Run one optimization synchronously.

    Args:
        parcel: Land parcel
        config: Resolved configuration
        zones: Optional inclusion/exclusion zones
        terrain: Optional terrain analysis
        engine: Placement engine (defaults to config.optimization.engine)
        solar_policy: Solar target policy
        deadline: time.monotonic() value after which the run is abandoned
        cancel_event: Set to abandon the run
        progress: Callback receiving 0-100
        extra_warnings: Warnings to carry into the result

    Returns:
        PlacementResult

    Raises:
        ConfigurationError: Unknown engine
        TerrainBlockedError: Buildable fraction below 10%
        PlanningCancelledError: Cancelled or past the deadline
    """
    start = time.perf_counter()
    engine = engine or get_placement_engine(config.optimization.engine)
    budget = PlacementBudget(
        max_iterations=config.optimization.max_iterations,
        deadline=deadline,
        cancel_event=cancel_event,
    )

    region = resolve_buildable_region(parcel, config, zones, terrain)
    budget.check()

    catalog = build_candidate_catalog(config)
    orientation = select_orientation(
        region, parcel.latitude, config, catalog, solar_policy, check=budget.check
    )

    outcome = engine.place(region, config, orientation, budget, progress)
    elapsed_ms = (time.perf_counter() - start) * 1000

    return build_placement_result(
        parcel=parcel,
        region=region,
        outcome=outcome,
        orientation=orientation,
        config=config,
        terrain=terrain,
        computation_time_ms=elapsed_ms,
        engine=engine.name,
        extra_warnings=extra_warnings,
    )


# =============================================================================
# Service
# =============================================================================


class PlanningService:
    """
    Async facade used by the API and the job manager.

    Args:
        store: Where finished plans are kept
        timeout_s: Per-run wall-clock limit
        solar_policy: Solar target policy passed to every run
    """

    def __init__(
        self,
        store: ResultStore,
        timeout_s: float = 60.0,
        solar_policy: Optional[SolarPolicy] = None,
    ):
        self.store = store
        self.timeout_s = timeout_s
        self.solar_policy = solar_policy

    @staticmethod
    def resolve(
        override: Mapping[str, Any] | BaseModel | None = None,
        user_defaults: Mapping[str, Any] | BaseModel | None = None,
    ) -> tuple[PlannerConfiguration, list[str]]:
        """
        Resolve configuration and collect warnings about forced overrides.

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        warnings = []
        if solar_disable_requested(user_defaults, override):
            warnings.append(SOLAR_FORCED_WARNING)
        configuration = resolve_configuration(user_defaults=user_defaults, override=override)
        get_placement_engine(configuration.optimization.engine)
        return configuration, warnings

    async def run(
        self,
        inputs: PlanningInputs,
        configuration: PlannerConfiguration,
        warnings: Sequence[str] = (),
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> StoredPlan:
        """Run the pipeline in a worker thread and store the result."""
        result_id = content_address(inputs, configuration)
        cancel_event = cancel_event or threading.Event()
        deadline = time.monotonic() + self.timeout_s
        logger.info(f"Planning {inputs.parcel.name!r} ({inputs.parcel.area_m2:.0f} sqm) as {result_id[:12]}")

        try:
            result = await asyncio.to_thread(
                plan_layout,
                inputs.parcel,
                configuration,
                inputs.zones,
                inputs.terrain,
                solar_policy=self.solar_policy,
                deadline=deadline,
                cancel_event=cancel_event,
                progress=progress,
                extra_warnings=warnings,
            )
        except asyncio.CancelledError:
            # Stop the worker thread at its next check
            cancel_event.set()
            raise

        plan = StoredPlan(
            result_id=result_id,
            inputs=inputs.to_dict(),
            configuration=configuration.model_dump(mode="json"),
            result=result.to_dict(),
        )
        await self.store.put(result_id, plan)
        return plan

    async def create_plan(
        self,
        inputs: PlanningInputs,
        override: Mapping[str, Any] | BaseModel | None = None,
        user_defaults: Mapping[str, Any] | BaseModel | None = None,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> StoredPlan:
        configuration, warnings = self.resolve(override, user_defaults)
        return await self.run(inputs, configuration, warnings, cancel_event, progress)

    async def get_plan(self, result_id: str) -> StoredPlan:
        """
        Raises:
            PlanNotFoundError: Unknown or expired id
        """
        plan = await self.store.get(result_id)
        if plan is None:
            raise PlanNotFoundError(result_id)
        return plan

    async def recalculate(self, result_id: str, command: RecalculateCommand) -> StoredPlan:
        """
        Re-run a stored plan from scratch with a command's configuration delta.

        Raises:
            PlanNotFoundError: Unknown or expired id
            ConfigurationError: Invalid command parameters
        """
        previous = await self.get_plan(result_id)
        inputs = PlanningInputs.from_dict(previous.inputs)
        configuration = command.apply(PlannerConfiguration.model_validate(previous.configuration))
        logger.info(f"Recalculating {result_id[:12]} with {command.kind.value}")
        return await self.run(inputs, configuration)
