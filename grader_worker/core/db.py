"""Record store for scan and competitor rows."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from psycopg2 import errorcodes, extras, pool, sql

from grader_worker.core.status import ScanStatus, accepted_from, has_passed

logger = logging.getLogger(__name__)

# Columns the worker is allowed to write on the scan row.
SCAN_COLUMNS = frozenset(
    {
        "place_id",
        "lat",
        "lng",
        "city",
        "score",
        "score_raw",
        "score_breakdown_json",
        "issues_json",
        "top_issues",
        "insights_json",
        "completed_at",
    }
)
_JSON_COLUMNS = frozenset({"score_breakdown_json", "issues_json", "top_issues", "insights_json"})

COMPETITOR_COLUMNS = (
    "scan_id",
    "place_id",
    "name",
    "rating",
    "reviews",
    "distance_m",
    "rank_map_pack",
    "rank_organic",
)


class ScanTransitionConflict(RuntimeError):
    """Raised when the scan row is not in a status that may move to the requested one."""

    def __init__(self, scan_id: str, status: ScanStatus):
        super().__init__(f"scan {scan_id} cannot move to {ScanStatus(status).value} from its stored status")
        self.scan_id = scan_id
        self.status = ScanStatus(status)


def init_pool(database_url: str, minconn: int = 1, maxconn: int = 5) -> pool.ThreadedConnectionPool:
    """Create the connection pool shared by all worker threads."""
    if not database_url:
        raise RuntimeError("DATABASE_URL is required for database connections")
    connection_pool = pool.ThreadedConnectionPool(
        minconn,
        maxconn,
        dsn=database_url,
        connect_timeout=10,
    )
    logger.info("Database connection pool initialised (max=%d)", maxconn)
    return connection_pool


def is_duplicate_scan_error(exc: BaseException) -> bool:
    """True when ``exc`` is the store rejecting a second scan of a place on the same day."""
    return getattr(exc, "pgcode", None) == errorcodes.UNIQUE_VIOLATION


def _prepare_scan_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - SCAN_COLUMNS
    if unknown:
        raise ValueError(f"unknown scan columns: {', '.join(sorted(unknown))}")
    prepared: Dict[str, Any] = {}
    for column, value in fields.items():
        if column in _JSON_COLUMNS and value is not None:
            value = extras.Json(value)
        prepared[column] = value
    return prepared


def _assignments(columns: Iterable[str]) -> sql.Composed:
    return sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(column)) for column in columns
    )


_INSERT_COMPETITORS = """
INSERT INTO competitor (
    scan_id,
    place_id,
    name,
    rating,
    reviews,
    distance_m,
    rank_map_pack,
    rank_organic
) VALUES %s
ON CONFLICT (scan_id, place_id) DO NOTHING;
"""


class ScanStore:
    """Row-level writes against the ``scan`` and ``competitor`` tables."""

    def __init__(self, connection_pool: pool.AbstractConnectionPool):
        self._pool = connection_pool

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """Yield a pooled connection, committing on success and rolling back on error."""
        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def transition(self, scan_id: str, status: ScanStatus, fields: Optional[Mapping[str, Any]] = None) -> bool:
        """Move the scan to ``status`` and write ``fields`` in the same statement.

        The row is only touched while its stored status is a predecessor of
        ``status`` (or ``status`` itself, for stage writes). Returns False
        without writing when the row is already at a later stage, so status
        never moves backward. Any other stored status raises
        ScanTransitionConflict.
        """
        status = ScanStatus(status)
        params = _prepare_scan_fields(fields or {})
        columns = ["status", *params]
        params["status"] = status.value
        params["scan_id"] = scan_id
        params["allowed"] = sorted(s.value for s in accepted_from(status))

        query = sql.SQL("UPDATE scan SET {assignments} WHERE id = {scan_id} AND status::text = ANY({allowed})").format(
            assignments=_assignments(columns),
            scan_id=sql.Placeholder("scan_id"),
            allowed=sql.Placeholder("allowed"),
        )
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                if cur.rowcount:
                    logger.debug("Scan %s moved to %s", scan_id, status.value)
                    return True
                cur.execute("SELECT status FROM scan WHERE id = %s", (scan_id,))
                row = cur.fetchone()

        if row is not None and has_passed(ScanStatus(row[0]), status):
            logger.debug("Scan %s already past %s (stored=%s); write skipped", scan_id, status.value, row[0])
            return False
        raise ScanTransitionConflict(scan_id, status)

    def update_scan(self, scan_id: str, fields: Mapping[str, Any]) -> None:
        """Plain update-by-id that leaves the status untouched."""
        params = _prepare_scan_fields(fields)
        if not params:
            return
        columns = list(params)
        params["scan_id"] = scan_id
        query = sql.SQL("UPDATE scan SET {assignments} WHERE id = {scan_id}").format(
            assignments=_assignments(columns),
            scan_id=sql.Placeholder("scan_id"),
        )
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)

    def insert_competitors(self, rows: List[Mapping[str, Any]]) -> None:
        """Insert all competitor rows for a scan in one batch."""
        if not rows:
            return
        values = [tuple(row.get(column) for column in COMPETITOR_COLUMNS) for row in rows]
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                extras.execute_values(cur, _INSERT_COMPETITORS, values)
        logger.debug("Inserted %d competitor rows", len(values))

    def get_status(self, scan_id: str) -> Optional[ScanStatus]:
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT status FROM scan WHERE id = %s", (scan_id,))
                row = cur.fetchone()
        if row is None:
            return None
        return ScanStatus(row[0])

    def is_duplicate_scan_error(self, exc: BaseException) -> bool:
        return is_duplicate_scan_error(exc)
