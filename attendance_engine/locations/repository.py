"""SQL access to locations."""
from typing import Optional

from sqlalchemy import JSON, text
from sqlalchemy.orm import Session

from attendance_engine.locations.schemas import Location


class SqlLocationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, location_id: int) -> Optional[Location]:
        stmt = text(
            """
            SELECT id, name, purpose, environment, center_lat, center_lon, radius_m, ring
              FROM locations
             WHERE id = :id
            """
        ).columns(ring=JSON)
        row = self.db.execute(stmt, {"id": location_id}).fetchone()
        if not row:
            return None
        return Location(
            id=row.id,
            name=row.name,
            purpose=row.purpose,
            environment=row.environment,
            center_lat=row.center_lat,
            center_lon=row.center_lon,
            radius_m=row.radius_m,
            ring=[tuple(v) for v in row.ring] if row.ring else None,
        )
