"""
Planning error taxonomy.

Input errors are raised before optimization begins, terrain blocking is fatal,
and cancellation discards the in-progress run. Zero placements and low
utilization are not errors here; they are reported inside the PlacementResult.
"""
from typing import Optional


class PlanningError(Exception):
    """Base class for all planning failures."""
    pass


class GeometryError(PlanningError):
    """Raised when a geometry primitive receives unusable input."""
    pass


class InvalidParcelError(PlanningError):
    """Raised when the land parcel cannot form a polygon."""
    pass


class ConfigurationError(PlanningError):
    """Raised when a resolved configuration violates its range constraints."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class TerrainBlockedError(PlanningError):
    """Raised when too little of the parcel is buildable to plan on it."""

    def __init__(self, buildable_fraction: float, threshold: float, reason: str = ""):
        self.buildable_fraction = buildable_fraction
        self.threshold = threshold
        message = (
            f"Area is {buildable_fraction * 100:.1f}% buildable "
            f"(minimum {threshold * 100:.0f}%). "
            "Cannot build on water bodies or heavily restricted zones."
        )
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class PlanningCancelledError(PlanningError):
    """Raised when a run is cancelled or exceeds its deadline."""
    pass


class PlanNotFoundError(PlanningError):
    """Raised when a stored plan id is unknown or has expired."""

    def __init__(self, result_id: str):
        self.result_id = result_id
        super().__init__(f"Plan {result_id} not found")
