"""
FastAPI dependencies.

The result store, planning service and job manager are created once in the
application lifespan and kept on ``app.state``; routes receive them here.
"""
from typing import Any

from fastapi import Request

from polyplan.config import Settings, get_settings
from polyplan.services.planning_jobs import PlanningJobManager
from polyplan.services.planning_service import PlanningService
from polyplan.services.result_store import InMemoryResultStore, ResultStore

# The named 422 constant differs between Starlette releases
HTTP_422_UNPROCESSABLE = 422


def build_result_store(settings: Settings) -> ResultStore:
    """Create the configured result store backend."""
    if settings.result_store_backend == "database":
        from polyplan.database import async_session_maker
        from polyplan.services.result_store import DatabaseResultStore

        return DatabaseResultStore(async_session_maker, ttl_seconds=settings.result_ttl_s)
    return InMemoryResultStore(
        ttl_seconds=settings.result_ttl_s,
        max_entries=settings.result_store_max_entries,
    )


def get_planning_service(request: Request) -> PlanningService:
    return request.app.state.planning_service


def get_job_manager(request: Request) -> PlanningJobManager:
    return request.app.state.job_manager


def get_user_defaults() -> dict[str, Any]:
    """Stored planner defaults applied under every request override."""
    return get_settings().planner_defaults
