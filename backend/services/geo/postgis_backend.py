"""PostGIS spatial backend using ST_DWithin on geography points."""

from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from models.config import get_settings
from models.exceptions import SpatialQueryException
from repositories.issue_repository import IssueRepository

from .base_backend import SpatialBackend


class PostGISSpatialBackend(SpatialBackend):
    """
    Radius queries for PostgreSQL with the PostGIS extension.

    Each query runs inside a savepoint with a transaction-local statement
    timeout, so a slow or failed lookup never poisons the caller's
    transaction.
    """

    POINT_SQL = "ST_SetSRID(ST_MakePoint(longitude, latitude), 4326)::geography"
    ORIGIN_SQL = "ST_SetSRID(ST_MakePoint(:lon, :lat), 4326)::geography"

    @property
    def backend_name(self) -> str:
        return "postgis"

    def _where_clause(self, exclude_id: Optional[int]) -> str:
        clause = (
            "category = :category AND merged_into_id IS NULL "
            f"AND ST_DWithin({self.POINT_SQL}, {self.ORIGIN_SQL}, :radius)"
        )
        if exclude_id is not None:
            clause += " AND id != :exclude_id"
        return clause

    def _params(
        self,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int],
    ) -> Dict[str, Any]:
        # Enum columns store the member name
        params: Dict[str, Any] = {
            "category": category.name,
            "lon": lon,
            "lat": lat,
            "radius": radius_m,
        }
        if exclude_id is not None:
            params["exclude_id"] = exclude_id
        return params

    def _execute_with_timeout(self, db: Session, sql: str, params: Dict[str, Any]):
        timeout_ms = get_settings().SPATIAL_QUERY_TIMEOUT_MS
        with db.begin_nested():
            db.execute(
                text("SELECT set_config('statement_timeout', :timeout, true)"),
                {"timeout": str(int(timeout_ms))},
            )
            rows = db.execute(text(sql), params).all()
            db.execute(text("SELECT set_config('statement_timeout', '0', true)"))
        return rows

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
        sql = (
            f"SELECT id FROM issues WHERE {self._where_clause(exclude_id)} "
            "ORDER BY created_at ASC, id ASC LIMIT :limit"
        )
        params = self._params(category, lon, lat, radius_m, exclude_id)
        params["limit"] = limit
        try:
            rows = self._execute_with_timeout(db, sql, params)
        except Exception as e:
            raise SpatialQueryException(f"PostGIS radius query failed: {e}") from e

        ids = [row[0] for row in rows]
        if not ids:
            return []
        issues_by_id = {i.id: i for i in IssueRepository(db).get_by_ids(ids)}
        return [issues_by_id[i] for i in ids if i in issues_by_id]

    def count_canonical_within_radius(
        self,
        db: Session,
        category: db_models.IssueCategory,
        lon: float,
        lat: float,
        radius_m: float,
        exclude_id: Optional[int] = None,
    ) -> int:
        sql = f"SELECT COUNT(*) FROM issues WHERE {self._where_clause(exclude_id)}"
        params = self._params(category, lon, lat, radius_m, exclude_id)
        try:
            rows = self._execute_with_timeout(db, sql, params)
        except Exception as e:
            raise SpatialQueryException(f"PostGIS radius count failed: {e}") from e
        return int(rows[0][0]) if rows else 0

    def is_available(self, db: Session) -> bool:
        try:
            with db.begin_nested():
                db.execute(text("SELECT PostGIS_Version()")).scalar()
            return True
        except Exception as e:
            logger.warning(f"PostGIS not available: {e}")
            return False
