"""
Pydantic schemas for parcel geometry, user zones and terrain input.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from polyplan.services.parcel import RestrictedAreaType, Severity, ZoneKind


class Coordinate(BaseModel):
    """A geographic point."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


def _check_ring(v: list[Coordinate]) -> list[Coordinate]:
    distinct = {(c.lat, c.lng) for c in v}
    if len(distinct) < 3:
        raise ValueError(f"At least 3 distinct coordinates required, got {len(distinct)}")
    return v


class LandArea(BaseModel):
    """Parcel boundary; the ring is closed automatically."""

    name: str = Field(
        default="Land parcel",
        min_length=1,
        max_length=255,
        description="Display name of the parcel",
    )
    coordinates: list[Coordinate] = Field(
        ...,
        min_length=3,
        description="Ordered boundary vertices",
    )


class ZoneInput(BaseModel):
    """User-drawn inclusion or exclusion zone."""

    kind: ZoneKind = Field(
        default=ZoneKind.EXCLUSION,
        description="Whether the zone removes or re-admits area",
    )
    name: Optional[str] = Field(None, max_length=255)
    coordinates: list[Coordinate] = Field(..., min_length=3)

    @field_validator("coordinates")
    @classmethod
    def validate_ring(cls, v: list[Coordinate]) -> list[Coordinate]:
        return _check_ring(v)


class RestrictedZoneInput(BaseModel):
    """Restricted area reported by terrain or compliance analysis."""

    type: RestrictedAreaType
    reason: str = Field(..., min_length=1, max_length=500)
    coordinates: list[Coordinate] = Field(default_factory=list)
    severity: Severity = Severity.PROHIBITED
    area: Optional[float] = Field(None, ge=0, description="Reported area in sqm")


class TerrainInput(BaseModel):
    """Precomputed terrain analysis for the parcel."""

    buildable_area: Optional[float] = Field(None, ge=0, description="Buildable area in sqm")
    restricted_zones: list[RestrictedZoneInput] = Field(default_factory=list)
    average_slope: Optional[float] = Field(None, ge=0, le=90)
    elevation_range: Optional[tuple[float, float]] = None
    warnings: list[str] = Field(default_factory=list)
