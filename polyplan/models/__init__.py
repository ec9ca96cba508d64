"""
SQLAlchemy models for the polyhouse planner.
"""
from polyplan.models.base import Base, TimestampMixin
from polyplan.models.planning_record import PlanningRecord

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Models
    "PlanningRecord",
]
