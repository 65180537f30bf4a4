"""SQLite spatial backend using a Python haversine SQL function."""

from typing import Any, List, Optional

from loguru import logger
from sqlalchemy import func, select, text
from sqlalchemy.orm import Query, Session

import repositories.db_models as db_models
from helpers.geo import bounding_box, haversine_distance_m
from models.exceptions import SpatialQueryException

from .base_backend import SpatialBackend

SQL_FUNCTION_NAME = "haversine_m"


def register_haversine_function(dbapi_connection: Any) -> None:
    """
    Register haversine_m(lon1, lat1, lon2, lat2) on a raw sqlite3 connection.

    Safe to call repeatedly; SQLite replaces an existing registration.
    """
    dbapi_connection.create_function(
        SQL_FUNCTION_NAME, 4, haversine_distance_m, deterministic=True
    )


class SQLiteSpatialBackend(SpatialBackend):
    """
    Radius queries for SQLite.

    SQLite has no spatial types, so distance is computed by a registered
    Python function. A degree window is applied first so the lon/lat index
    narrows the rows the function has to run on.
    """

    @property
    def backend_name(self) -> str:
        return "sqlite"

    def _ensure_function(self, db: Session) -> None:
        register_haversine_function(db.connection().connection.driver_connection)

    def _radius_query(
        self,
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int],
    ) -> Query:
        bbox = bounding_box(lon, lat, radius_m)
        distance = func.haversine_m(
            db_models.Issue.longitude, db_models.Issue.latitude, lon, lat
        )
        query = db.query(db_models.Issue).filter(
            db_models.Issue.category == category,
            db_models.Issue.merged_into_id.is_(None),
            db_models.Issue.latitude.between(bbox.min_lat, bbox.max_lat),
            distance <= radius_m,
        )
        if exclude_id is not None:
            query = query.filter(db_models.Issue.id != exclude_id)
        return query

    def find_canonical_within_radius(
        self,
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int] = None,
        limit: int = 1,
    ) -> List[db_models.Issue]:
        try:
            self._ensure_function(db)
            return (
                self._radius_query(db, category, lon, lat, radius_m, exclude_id)
                .order_by(
                    db_models.Issue.created_at.asc(), db_models.Issue.id.asc()
                )
                .limit(limit)
                .all()
            )
        except Exception as e:
            raise SpatialQueryException(
                f"SQLite radius query failed: {e}"
            ) from e

    def count_canonical_within_radius(
        self,
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int] = None,
    ) -> int:
        try:
            self._ensure_function(db)
            return self._radius_query(
                db, category, lon, lat, radius_m, exclude_id
            ).count()
        except Exception as e:
            raise SpatialQueryException(
                f"SQLite radius count failed: {e}"
            ) from e

    def is_available(self, db: Session) -> bool:
        try:
            self._ensure_function(db)
            db.execute(select(func.haversine_m(0.0, 0.0, 0.0, 0.0))).scalar()
            db.execute(text("SELECT 1 FROM issues LIMIT 1"))
            return True
        except Exception as e:
            logger.warning(f"SQLite spatial backend unavailable: {e}")
            return False
