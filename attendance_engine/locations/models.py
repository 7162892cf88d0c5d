"""SQLAlchemy models for locations."""

from sqlalchemy import Column, Integer, String, Float, JSON, DateTime
from sqlalchemy.sql import func
from attendance_engine.db import Base


class Location(Base):
    """Registration area or venue; either a circle or a polygon ring."""

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    purpose = Column(String(32), nullable=False)
    environment = Column(String(16), nullable=False, default="OUTDOOR")
    center_lat = Column(Float, nullable=True)
    center_lon = Column(Float, nullable=True)
    radius_m = Column(Float, nullable=True)
    # closed ring of [lat, lon] pairs
    ring = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
