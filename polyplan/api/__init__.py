"""
API modules for the polyhouse planner.
"""
from polyplan.api.parcels import router as parcels_router
from polyplan.api.planning import router as planning_router

__all__ = ["planning_router", "parcels_router"]
