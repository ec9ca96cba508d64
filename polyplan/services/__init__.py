"""
Planning services for the polyhouse planner.
"""
# Inputs and configuration
from polyplan.services.configuration import (
    OrientationStrategy,
    PlannerConfiguration,
    RecalculateCommand,
    RecalculateKind,
    resolve_configuration,
)
from polyplan.services.exceptions import (
    ConfigurationError,
    GeometryError,
    InvalidParcelError,
    PlanNotFoundError,
    PlanningCancelledError,
    PlanningError,
    TerrainBlockedError,
)
from polyplan.services.kml_parser import ImportedParcel, KMLParseError, KMLParser
from polyplan.services.parcel import LandParcel, RestrictedArea, TerrainAnalysis, Zone, ZoneKind

# Optimization pipeline
from polyplan.services.buildable_region import BuildableRegion, resolve_buildable_region
from polyplan.services.candidates import Candidate, build_candidate_catalog
from polyplan.services.orientation import OrientationPlan, east_west_gutter_policy, select_orientation
from polyplan.services.placement_engine import (
    PLACEMENT_ENGINES,
    BlockGridPlacementEngine,
    PlacementEngine,
    PriorityPlacementEngine,
    get_placement_engine,
)
from polyplan.services.placement_result import PlacedStructure, PlacementResult
from polyplan.services.planning_service import PlanningInputs, PlanningService, plan_layout

# Storage and jobs
from polyplan.services.planning_jobs import JobStatus, PlanningJob, PlanningJobManager
from polyplan.services.result_store import (
    DatabaseResultStore,
    InMemoryResultStore,
    ResultStore,
    StoredPlan,
)

__all__ = [
    # Inputs and configuration
    "LandParcel",
    "Zone",
    "ZoneKind",
    "RestrictedArea",
    "TerrainAnalysis",
    "PlannerConfiguration",
    "OrientationStrategy",
    "RecalculateCommand",
    "RecalculateKind",
    "resolve_configuration",
    "KMLParser",
    "KMLParseError",
    "ImportedParcel",
    # Errors
    "PlanningError",
    "GeometryError",
    "InvalidParcelError",
    "ConfigurationError",
    "TerrainBlockedError",
    "PlanningCancelledError",
    "PlanNotFoundError",
    # Pipeline
    "BuildableRegion",
    "resolve_buildable_region",
    "Candidate",
    "build_candidate_catalog",
    "OrientationPlan",
    "east_west_gutter_policy",
    "select_orientation",
    "PlacementEngine",
    "PriorityPlacementEngine",
    "BlockGridPlacementEngine",
    "PLACEMENT_ENGINES",
    "get_placement_engine",
    "PlacedStructure",
    "PlacementResult",
    "PlanningInputs",
    "PlanningService",
    "plan_layout",
    # Storage and jobs
    "ResultStore",
    "InMemoryResultStore",
    "DatabaseResultStore",
    "StoredPlan",
    "PlanningJob",
    "PlanningJobManager",
    "JobStatus",
]
