"""
Planning API endpoints.

Create plans synchronously or as background jobs, fetch stored plans and
re-run them with typed recalculation commands.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from polyplan.schemas.planning import (
    CreatePlanRequest,
    EngineInfo,
    PlanningJobResponse,
    PlanResponse,
    RecalculateRequest,
)
from polyplan.api.dependencies import (
    HTTP_422_UNPROCESSABLE,
    get_job_manager,
    get_planning_service,
    get_user_defaults,
)
from polyplan.services.configuration import PlannerConfiguration, RecalculateCommand
from polyplan.services.exceptions import (
    ConfigurationError,
    InvalidParcelError,
    PlanNotFoundError,
    PlanningCancelledError,
    PlanningError,
    TerrainBlockedError,
)
from polyplan.services.placement_engine import PLACEMENT_ENGINES
from polyplan.services.planning_jobs import PlanningJob, PlanningJobManager
from polyplan.services.planning_service import PlanningInputs, PlanningService
from polyplan.services.result_store import StoredPlan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/planning", tags=["Planning"])


def _http_error(exc: PlanningError) -> HTTPException:
    """Map a planning failure to its HTTP response."""
    if isinstance(exc, PlanNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=exc.errors)
    if isinstance(exc, (InvalidParcelError, TerrainBlockedError)):
        return HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc))
    if isinstance(exc, PlanningCancelledError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _plan_response(plan: StoredPlan) -> PlanResponse:
    return PlanResponse(
        result_id=plan.result_id,
        result=plan.result,
        configuration=plan.configuration,
    )


def _job_response(job: PlanningJob) -> PlanningJobResponse:
    return PlanningJobResponse(**job.to_dict())


# =============================================================================
# Static info (must be BEFORE /{result_id} to avoid path conflict)
# =============================================================================


@router.get(
    "/engines",
    response_model=list[EngineInfo],
    summary="List placement engines",
)
async def list_engines() -> list[EngineInfo]:
    default = PlannerConfiguration().optimization.engine
    return [
        EngineInfo(name=name, description=engine_cls.description, default=name == default)
        for name, engine_cls in PLACEMENT_ENGINES.items()
    ]


@router.get(
    "/defaults",
    summary="Get the effective default configuration",
    description="System defaults merged with stored user defaults.",
)
async def get_defaults(
    user_defaults: dict[str, Any] = Depends(get_user_defaults),
) -> dict[str, Any]:
    try:
        configuration, _ = PlanningService.resolve(user_defaults=user_defaults)
    except ConfigurationError as e:
        logger.warning(f"Stored planner defaults are invalid: {e}")
        raise _http_error(e)
    return configuration.model_dump(mode="json")


# =============================================================================
# Background jobs
# =============================================================================


@router.post(
    "/jobs",
    response_model=PlanningJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a background planning job",
)
async def create_job(
    request: CreatePlanRequest,
    manager: PlanningJobManager = Depends(get_job_manager),
    user_defaults: dict[str, Any] = Depends(get_user_defaults),
) -> PlanningJobResponse:
    """
    Validate inputs and configuration, then plan in the background.

    Poll GET /api/planning/jobs/{job_id} for progress and the result id.
    """
    try:
        inputs = PlanningInputs.from_dict(request.inputs_dict())
        configuration, warnings = PlanningService.resolve(request.configuration, user_defaults)
    except PlanningError as e:
        logger.warning(f"Rejected planning job: {e}")
        raise _http_error(e)

    job = manager.submit(inputs, configuration, warnings)
    return _job_response(job)


@router.get(
    "/jobs/{job_id}",
    response_model=PlanningJobResponse,
    summary="Get planning job status",
)
async def get_job(
    job_id: str,
    manager: PlanningJobManager = Depends(get_job_manager),
) -> PlanningJobResponse:
    job = manager.get(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return _job_response(job)


@router.delete(
    "/jobs/{job_id}",
    response_model=PlanningJobResponse,
    summary="Cancel a planning job",
)
async def cancel_job(
    job_id: str,
    manager: PlanningJobManager = Depends(get_job_manager),
) -> PlanningJobResponse:
    job = manager.get(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    if not manager.cancel(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job {job_id} has already finished",
        )
    return _job_response(job)


# =============================================================================
# Plans
# =============================================================================


@router.post(
    "",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a plan",
    description="Run the placement optimizer for a parcel and store the result.",
)
async def create_plan(
    request: CreatePlanRequest,
    service: PlanningService = Depends(get_planning_service),
    user_defaults: dict[str, Any] = Depends(get_user_defaults),
) -> PlanResponse:
    try:
        inputs = PlanningInputs.from_dict(request.inputs_dict())
        plan = await service.create_plan(inputs, request.configuration, user_defaults)
    except PlanningError as e:
        logger.warning(f"Planning request failed: {e}")
        raise _http_error(e)
    return _plan_response(plan)


@router.get(
    "/{result_id}",
    response_model=PlanResponse,
    summary="Get a stored plan",
)
async def get_plan(
    result_id: str,
    service: PlanningService = Depends(get_planning_service),
) -> PlanResponse:
    try:
        plan = await service.get_plan(result_id)
    except PlanNotFoundError as e:
        raise _http_error(e)
    return _plan_response(plan)


@router.post(
    "/{result_id}/recalculate",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Re-run a plan with a recalculation command",
)
async def recalculate_plan(
    result_id: str,
    request: RecalculateRequest,
    service: PlanningService = Depends(get_planning_service),
) -> PlanResponse:
    """
    Apply a typed command to the stored configuration and re-optimize from scratch.

    - **maximize**: narrower corridors, infill on, optimized orientation
    - **uniform_orientation**: one angle for every structure
    - **ignore_restrictions**: build over restricted terrain zones
    - **adjust_min_modules**: change the per-structure module floor (1-100)
    """
    command = RecalculateCommand(kind=request.command, min_modules=request.min_modules)
    try:
        plan = await service.recalculate(result_id, command)
    except PlanningError as e:
        logger.warning(f"Recalculation of {result_id} failed: {e}")
        raise _http_error(e)
    return _plan_response(plan)
