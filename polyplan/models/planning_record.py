"""
PlanningRecord model - a stored plan keyed by its content address.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from polyplan.models.base import Base, TimestampMixin


class PlanningRecord(Base, TimestampMixin):
    """
    Persisted planning result.

    ``result_id`` is the SHA-256 of the canonical planning inputs, so
    re-running identical inputs overwrites the same row.
    """

    __tablename__ = "planning_records"

    result_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    # Parcel, zones and terrain as submitted
    inputs: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    # Fully resolved configuration used for the run
    configuration: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    # PlacementResult.to_dict()
    result: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<PlanningRecord {self.result_id[:12]} expires {self.expires_at.isoformat()}>"
