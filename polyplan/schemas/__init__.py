"""
Pydantic schemas for API request/response validation.
"""
from polyplan.schemas.planning import (
    ConfigurationOverride,
    CreatePlanRequest,
    EngineInfo,
    ParsedParcelResponse,
    PlanningJobResponse,
    PlanResponse,
    PlacementResultResponse,
    RecalculateRequest,
)
from polyplan.schemas.zone import Coordinate, LandArea, RestrictedZoneInput, TerrainInput, ZoneInput

__all__ = [
    # Geometry inputs
    "Coordinate",
    "LandArea",
    "ZoneInput",
    "RestrictedZoneInput",
    "TerrainInput",
    # Planning
    "ConfigurationOverride",
    "CreatePlanRequest",
    "RecalculateRequest",
    "PlanResponse",
    "PlacementResultResponse",
    "PlanningJobResponse",
    "EngineInfo",
    "ParsedParcelResponse",
]
