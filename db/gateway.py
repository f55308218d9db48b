"""
db/gateway.py -- Persistence gateway: the one owner of the connection pool.

Uses SQLAlchemy Core over a bounded QueuePool. Capacity is fixed
(pool_size, max_overflow=0); callers beyond capacity queue until a
connection frees up or pool_timeout elapses, which surfaces as PoolExhausted.

Every query goes through bound parameters. Strings are wrapped in text() and
use named placeholders (":room_id"); Core constructs pass through untouched.

Driver errors are never swallowed. They are re-raised as StoreError, tagged
with a StoreErrorKind and the driver's own error code, with the original
exception chained as __cause__. api/main.py maps the kind to a status.

Usage:
    db = Database("mysql+mysqlconnector://root:pw@localhost/keycontrol_db")
    row = db.fetch_one("SELECT * FROM rooms WHERE id = :id", {"id": 1})
    with db.transaction() as tx:
        tx.execute(...)
        tx.execute(...)
    db.shutdown()

Layer rule: no imports from api/, auth/, or custody/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import create_engine, event, exc, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import QueuePool
from sqlalchemy.sql.elements import ClauseElement

from core.errors import PoolExhausted

logger = logging.getLogger("keycontrol.db")


# ---------------------------------------------------------------------------
# Store error variant
# ---------------------------------------------------------------------------


class StoreErrorKind(str, Enum):
    unique_violation = "unique_violation"
    foreign_key_violation = "foreign_key_violation"
    unavailable = "unavailable"
    pool_exhausted = "pool_exhausted"
    other = "other"


class StoreError(Exception):
    """A failed store call, tagged with what kind of failure it was.

    code is whatever the driver reported (MySQL errno, PostgreSQL SQLSTATE,
    SQLite extended error name) so operators can still see the raw cause.
    """

    def __init__(self, kind: StoreErrorKind, message: str, code: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code


# MySQL errnos
_MYSQL_DUP_ENTRY = 1062
_MYSQL_FK_CODES = {1216, 1217, 1451, 1452}
_MYSQL_CONNECTION_CODES = {2002, 2003, 2005, 2006, 2013}


def _driver_code(orig: BaseException | None) -> Any:
    if orig is None:
        return None
    for attr in ("errno", "pgcode", "sqlite_errorname"):
        value = getattr(orig, attr, None)
        if value is not None:
            return value
    return None


def classify_store_error(error: exc.SQLAlchemyError) -> StoreError:
    """Translate a SQLAlchemy/DBAPI exception into a tagged StoreError."""
    if isinstance(error, exc.TimeoutError):
        return StoreError(StoreErrorKind.pool_exhausted, str(error))

    orig = getattr(error, "orig", None)
    code = _driver_code(orig)
    text_lower = str(orig if orig is not None else error).lower()

    if isinstance(error, exc.IntegrityError):
        if (
            code in (_MYSQL_DUP_ENTRY, "23505", "SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")
            or "unique constraint" in text_lower
            or "duplicate entry" in text_lower
        ):
            return StoreError(StoreErrorKind.unique_violation, str(orig), code)
        if code in _MYSQL_FK_CODES or code in ("23503", "SQLITE_CONSTRAINT_FOREIGNKEY") or "foreign key" in text_lower:
            return StoreError(StoreErrorKind.foreign_key_violation, str(orig), code)
        return StoreError(StoreErrorKind.other, str(orig), code)

    if isinstance(error, exc.DBAPIError) and (
        error.connection_invalidated
        or code in _MYSQL_CONNECTION_CODES
        or "connection refused" in text_lower
        or "can't connect" in text_lower
        or "could not connect" in text_lower
    ):
        return StoreError(StoreErrorKind.unavailable, str(orig or error), code)

    return StoreError(StoreErrorKind.other, str(orig or error), code)


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except exc.TimeoutError as e:
        logger.warning("Connection pool exhausted: %s", e)
        raise PoolExhausted() from e
    except exc.SQLAlchemyError as e:
        store_error = classify_store_error(e)
        logger.error("Store error (%s, code=%s): %s", store_error.kind.value, store_error.code, store_error)
        raise store_error from e


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class QueryResult:
    """Outcome of execute(): materialized rows for reads, counts for writes."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    inserted_primary_key: tuple | None = None


def _coerce(query: str | ClauseElement) -> ClauseElement:
    return text(query) if isinstance(query, str) else query


def _run(conn: Connection, query: str | ClauseElement, params: Mapping[str, Any] | None) -> QueryResult:
    result = conn.execute(_coerce(query), dict(params or {}))
    rows = [dict(r) for r in result.mappings().all()] if result.returns_rows else []
    inserted = tuple(result.inserted_primary_key) if result.is_insert and not result.returns_rows else None
    return QueryResult(rows=rows, rowcount=result.rowcount, inserted_primary_key=inserted)


class Transaction:
    """Handle yielded by Database.transaction(). Same query shapes, one connection."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def execute(self, query: str | ClauseElement, params: Mapping[str, Any] | None = None) -> QueryResult:
        with _translate_errors():
            return _run(self._conn, query, params)

    def fetch_one(self, query: str | ClauseElement, params: Mapping[str, Any] | None = None) -> dict | None:
        rows = self.execute(query, params).rows
        return rows[0] if rows else None

    def fetch_many(self, query: str | ClauseElement, params: Mapping[str, Any] | None = None) -> list[dict]:
        return self.execute(query, params).rows


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable FK enforcement and WAL mode on every new SQLite connection.

    SQLite PRAGMAs are per-connection, so this runs from the pool's connect hook.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class Database:
    """Owned connection pool with execute / fetch_one / fetch_many.

    Constructed once at startup (api/main.py lifespan) and passed into every
    store. shutdown() drains and closes the pool.
    """

    def __init__(self, url: str, pool_size: int = 10, pool_timeout: float = 60.0) -> None:
        connect_args: dict = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=0,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    def execute(self, query: str | ClauseElement, params: Mapping[str, Any] | None = None) -> QueryResult:
        """Run one statement in its own short transaction (autocommitted on success)."""
        with self.transaction() as tx:
            return tx.execute(query, params)

    def fetch_one(self, query: str | ClauseElement, params: Mapping[str, Any] | None = None) -> dict | None:
        """Return the first row or None."""
        rows = self.execute(query, params).rows
        return rows[0] if rows else None

    def fetch_many(self, query: str | ClauseElement, params: Mapping[str, Any] | None = None) -> list[dict]:
        """Return the full result set."""
        return self.execute(query, params).rows

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run several statements on one connection as a single unit.

        Commits when the block exits normally; rolls back when anything raises
        (including domain errors raised between statements) and re-raises.
        """
        with _translate_errors():
            with self.engine.begin() as conn:
                yield Transaction(conn)

    def health_check(self) -> bool:
        """Acquire a connection, run SELECT 1, release it. Never raises."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return False

    def shutdown(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()
        logger.info("Connection pool closed")
