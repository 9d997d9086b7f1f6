"""
core/db.py -- Shared SQLAlchemy Core schema registry and engine factory.

Every store declares its tables against the single `metadata` object below so
foreign keys can cross package boundaries (memberships reference users and
roles, activity entries reference projects and users). Each store calls
`metadata.create_all(engine)` in its constructor; create_all is idempotent
and only creates missing tables.

SQLite specifics:
  - check_same_thread=False because FastAPI runs sync handlers in a thread pool.
  - PRAGMA journal_mode=WAL lets readers proceed during writes.
  - PRAGMA foreign_keys=ON is required per connection; SQLite ships with
    referential integrity disabled.
  - busy timeout is raised so concurrent writers queue instead of failing.

Layer rule: core/ is the kernel. No imports from the feature packages.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine

from core.errors import ValidationError

metadata = MetaData()


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on every new pooled connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Return an Engine for db_url with the SQLite listeners attached when relevant."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def now_iso() -> str:
    """Current UTC time as a fixed-width ISO 8601 string.

    Fixed microsecond precision keeps lexicographic order identical to
    chronological order, which the audit and token queries rely on.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_iso(value: datetime) -> str:
    """Format an aware or naive (assumed UTC) datetime the same way as now_iso()."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def to_day(value) -> str | None:
    """Normalize a date, or a "YYYY-MM-DD" string, to "YYYY-MM-DD". None passes through."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError as exc:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD.") from exc


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """Lower-cased "%term%" for a LIKE match, with %, _ and the escape char escaped.

    Use with column.like(pattern, escape=LIKE_ESCAPE) so user input matches
    literally.
    """
    escaped = (
        term.strip().lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"
