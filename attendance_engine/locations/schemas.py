"""Pydantic schemas for geofenced locations."""
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from attendance_engine.schemas import LocationEnvironment, LocationPurpose

# (lat, lon)
Vertex = Tuple[float, float]


class Location(BaseModel):
    """A geofence: either a circle or a closed polygon ring."""

    id: int
    name: str = Field(..., min_length=1)
    purpose: LocationPurpose
    environment: LocationEnvironment = LocationEnvironment.OUTDOOR

    center_lat: Optional[float] = Field(None, ge=-90, le=90)
    center_lon: Optional[float] = Field(None, ge=-180, le=180)
    radius_m: Optional[float] = Field(None, gt=0, description="Circle radius in meters")

    ring: Optional[List[Vertex]] = Field(
        None, description="Closed outer ring of (lat, lon) vertices"
    )

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("ring", mode="before")
    @classmethod
    def accept_geojson(cls, v):
        """GeoJSON polygons ([lon, lat] order) are converted to a closed (lat, lon) ring."""
        if isinstance(v, dict):
            from attendance_engine.geo import geojson_to_ring

            return geojson_to_ring(v)
        return v

    @model_validator(mode="after")
    def check_shape(self):
        has_circle = self.radius_m is not None
        has_ring = bool(self.ring)
        if has_circle == has_ring:
            raise ValueError("A location needs exactly one geofence: a circle or a polygon ring")
        if has_circle and (self.center_lat is None or self.center_lon is None):
            raise ValueError("A circular geofence needs center_lat and center_lon")
        return self

    @property
    def is_circle(self) -> bool:
        return self.radius_m is not None
