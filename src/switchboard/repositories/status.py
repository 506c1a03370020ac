"""
MigrationStatusRepository - durable unit -> backend mapping.

Backs the persisted layer of the MigrationStatusStore. Overrides are
never stored here.

Database Table:
    migration_status (
        name        TEXT,
        kind        TEXT,
        backend     TEXT,
        updated_at  TEXT (ISO 8601),
        PRIMARY KEY (name, kind)
    )

Implementations:
    - InMemoryMigrationStatusRepository: tests and single-process use
    - SQLiteMigrationStatusRepository: aiosqlite connection
    - SQLAlchemyMigrationStatusRepository: any SQLAlchemy async engine
      (postgresql+asyncpg, sqlite+aiosqlite, ...)

Usage:
    >>> async with aiosqlite.connect("switchboard.db") as db:
    ...     repo = SQLiteMigrationStatusRepository(db)
    ...     await repo.initialize()
    ...     await repo.save(MigrationStatus(unit=unit, backend=Backend.SECONDARY))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from switchboard.models import Backend, MigrationStatus, MigrationUnit, UnitKind
from switchboard.observability import ATTR_BACKEND, ATTR_DB_SYSTEM, ATTR_UNIT, Tracer, create_tracer
from switchboard.repositories._connection import connection_scope, dialect_name

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

MIGRATION_STATUS_SCHEMA = """
CREATE TABLE IF NOT EXISTS migration_status (
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    backend TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (name, kind)
)
"""

_UPSERT_SQL = """
INSERT INTO migration_status (name, kind, backend, updated_at)
VALUES ({params})
ON CONFLICT (name, kind) DO UPDATE
SET backend = excluded.backend,
    updated_at = excluded.updated_at
"""


@runtime_checkable
class MigrationStatusRepository(Protocol):
    """
    Protocol for migration status persistence.

    Implementations must make save() an atomic upsert per unit.
    """

    async def get(self, unit: MigrationUnit) -> MigrationStatus | None:
        """
        Get the persisted status for a unit.

        Returns:
            MigrationStatus or None if the unit has never been set
        """
        ...

    async def save(self, status: MigrationStatus) -> None:
        """Insert or replace the status for status.unit."""
        ...

    async def delete(self, unit: MigrationUnit) -> bool:
        """
        Remove the persisted status so the unit reverts to the default.

        Returns:
            True if a status existed
        """
        ...

    async def list_all(self) -> list[MigrationStatus]:
        """All persisted statuses ordered by kind then name."""
        ...


def _row_to_status(row: Sequence[Any]) -> MigrationStatus:
    return MigrationStatus(
        unit=MigrationUnit(name=row[0], kind=UnitKind(row[1])),
        backend=Backend(row[2]),
        updated_at=datetime.fromisoformat(row[3]),
    )


def _status_params(status: MigrationStatus) -> tuple[str, str, str, str]:
    return (
        status.unit.name,
        status.unit.kind.value,
        status.backend.value,
        status.updated_at.isoformat(),
    )


class InMemoryMigrationStatusRepository:
    """
    In-memory implementation of MigrationStatusRepository.

    All data is lost when the process terminates.
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._statuses: dict[MigrationUnit, MigrationStatus] = {}
        self._lock = asyncio.Lock()

    async def get(self, unit: MigrationUnit) -> MigrationStatus | None:
        with self._tracer.span("switchboard.status_repo.get", {ATTR_UNIT: str(unit)}):
            async with self._lock:
                return self._statuses.get(unit)

    async def save(self, status: MigrationStatus) -> None:
        with self._tracer.span(
            "switchboard.status_repo.save",
            {ATTR_UNIT: str(status.unit), ATTR_BACKEND: status.backend.value},
        ):
            async with self._lock:
                self._statuses[status.unit] = status

    async def delete(self, unit: MigrationUnit) -> bool:
        with self._tracer.span("switchboard.status_repo.delete", {ATTR_UNIT: str(unit)}):
            async with self._lock:
                return self._statuses.pop(unit, None) is not None

    async def list_all(self) -> list[MigrationStatus]:
        with self._tracer.span("switchboard.status_repo.list_all", {}):
            async with self._lock:
                return sorted(
                    self._statuses.values(),
                    key=lambda s: (s.unit.kind.value, s.unit.name),
                )

    async def clear(self) -> None:
        """Clear all statuses. Useful for test setup/teardown."""
        async with self._lock:
            self._statuses.clear()


class SQLiteMigrationStatusRepository:
    """
    SQLite implementation of MigrationStatusRepository over aiosqlite.

    Example:
        >>> async with aiosqlite.connect("switchboard.db") as db:
        ...     repo = SQLiteMigrationStatusRepository(db)
        ...     await repo.initialize()
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection

    async def initialize(self) -> None:
        """Create the migration_status table if it does not exist."""
        await self._connection.execute(MIGRATION_STATUS_SCHEMA)
        await self._connection.commit()
        logger.info("Initialized SQLite migration_status table")

    async def get(self, unit: MigrationUnit) -> MigrationStatus | None:
        with self._tracer.span(
            "switchboard.status_repo.get",
            {ATTR_UNIT: str(unit), ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                """
                SELECT name, kind, backend, updated_at
                FROM migration_status
                WHERE name = ? AND kind = ?
                """,
                (unit.name, unit.kind.value),
            )
            row = await cursor.fetchone()
            return _row_to_status(row) if row else None

    async def save(self, status: MigrationStatus) -> None:
        with self._tracer.span(
            "switchboard.status_repo.save",
            {
                ATTR_UNIT: str(status.unit),
                ATTR_BACKEND: status.backend.value,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            await self._connection.execute(
                _UPSERT_SQL.format(params="?, ?, ?, ?"),
                _status_params(status),
            )
            await self._connection.commit()

    async def delete(self, unit: MigrationUnit) -> bool:
        with self._tracer.span(
            "switchboard.status_repo.delete",
            {ATTR_UNIT: str(unit), ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                "DELETE FROM migration_status WHERE name = ? AND kind = ?",
                (unit.name, unit.kind.value),
            )
            await self._connection.commit()
            return cursor.rowcount > 0

    async def list_all(self) -> list[MigrationStatus]:
        with self._tracer.span("switchboard.status_repo.list_all", {ATTR_DB_SYSTEM: "sqlite"}):
            cursor = await self._connection.execute(
                """
                SELECT name, kind, backend, updated_at
                FROM migration_status
                ORDER BY kind, name
                """
            )
            rows = await cursor.fetchall()
            return [_row_to_status(row) for row in rows]


class SQLAlchemyMigrationStatusRepository:
    """
    SQLAlchemy implementation of MigrationStatusRepository.

    The SQL is portable across PostgreSQL and SQLite (3.24+).

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> repo = SQLAlchemyMigrationStatusRepository(engine)
        >>> await repo.initialize()
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._conn = conn

    @property
    def _db_system(self) -> str:
        return dialect_name(self._conn)

    async def initialize(self) -> None:
        """Create the migration_status table if it does not exist."""
        async with connection_scope(self._conn, write=True) as conn:
            await conn.execute(text(MIGRATION_STATUS_SCHEMA))
        logger.info("Initialized %s migration_status table", self._db_system)

    async def get(self, unit: MigrationUnit) -> MigrationStatus | None:
        with self._tracer.span(
            "switchboard.status_repo.get",
            {ATTR_UNIT: str(unit), ATTR_DB_SYSTEM: self._db_system},
        ):
            query = text("""
                SELECT name, kind, backend, updated_at
                FROM migration_status
                WHERE name = :name AND kind = :kind
            """)
            async with connection_scope(self._conn, write=False) as conn:
                result = await conn.execute(query, {"name": unit.name, "kind": unit.kind.value})
                row = result.fetchone()
            return _row_to_status(row) if row else None

    async def save(self, status: MigrationStatus) -> None:
        with self._tracer.span(
            "switchboard.status_repo.save",
            {
                ATTR_UNIT: str(status.unit),
                ATTR_BACKEND: status.backend.value,
                ATTR_DB_SYSTEM: self._db_system,
            },
        ):
            name, kind, backend, updated_at = _status_params(status)
            query = text(_UPSERT_SQL.format(params=":name, :kind, :backend, :updated_at"))
            async with connection_scope(self._conn, write=True) as conn:
                await conn.execute(
                    query,
                    {"name": name, "kind": kind, "backend": backend, "updated_at": updated_at},
                )

    async def delete(self, unit: MigrationUnit) -> bool:
        with self._tracer.span(
            "switchboard.status_repo.delete",
            {ATTR_UNIT: str(unit), ATTR_DB_SYSTEM: self._db_system},
        ):
            query = text("DELETE FROM migration_status WHERE name = :name AND kind = :kind")
            async with connection_scope(self._conn, write=True) as conn:
                result = await conn.execute(query, {"name": unit.name, "kind": unit.kind.value})
            return result.rowcount > 0

    async def list_all(self) -> list[MigrationStatus]:
        with self._tracer.span(
            "switchboard.status_repo.list_all", {ATTR_DB_SYSTEM: self._db_system}
        ):
            query = text("""
                SELECT name, kind, backend, updated_at
                FROM migration_status
                ORDER BY kind, name
            """)
            async with connection_scope(self._conn, write=False) as conn:
                result = await conn.execute(query)
                rows = result.fetchall()
            return [_row_to_status(row) for row in rows]
