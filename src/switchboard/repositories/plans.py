"""
MigrationPlanRepository - persistence for batch migration plans.

A plan is stored as one JSON document including its results, so a
partially executed plan can be inspected and resumed after a restart.

Database Table:
    migration_plans (
        name        TEXT PRIMARY KEY,
        document    TEXT (JSON),
        created_at  TEXT (ISO 8601),
        updated_at  TEXT (ISO 8601)
    )
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from switchboard.models import MigrationPlan
from switchboard.observability import (
    ATTR_DB_SYSTEM,
    ATTR_PLAN_NAME,
    ATTR_PLAN_STATUS,
    Tracer,
    create_tracer,
)
from switchboard.repositories._connection import connection_scope, dialect_name

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

MIGRATION_PLANS_SCHEMA = """
CREATE TABLE IF NOT EXISTS migration_plans (
    name TEXT PRIMARY KEY,
    document TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_UPSERT_SQL = """
INSERT INTO migration_plans (name, document, created_at, updated_at)
VALUES ({params})
ON CONFLICT (name) DO UPDATE
SET document = excluded.document,
    created_at = excluded.created_at,
    updated_at = excluded.updated_at
"""


@runtime_checkable
class MigrationPlanRepository(Protocol):
    """Protocol for migration plan persistence."""

    async def get(self, name: str) -> MigrationPlan | None:
        """
        Get a plan by name.

        Returns:
            A detached copy of the stored plan, or None
        """
        ...

    async def save(self, plan: MigrationPlan) -> None:
        """Insert or replace the whole plan document."""
        ...

    async def delete(self, name: str) -> bool:
        ...

    async def list_all(self) -> list[MigrationPlan]:
        """All plans ordered by creation time."""
        ...


def _encode(plan: MigrationPlan) -> str:
    return json.dumps(plan.to_dict())


def _decode(document: str) -> MigrationPlan:
    return MigrationPlan.from_dict(json.loads(document))


class InMemoryMigrationPlanRepository:
    """
    In-memory implementation of MigrationPlanRepository.

    Plans are copied on save and on read so callers never share state
    with the repository, matching the SQL implementations.
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._plans: dict[str, MigrationPlan] = {}
        self._lock = asyncio.Lock()

    async def get(self, name: str) -> MigrationPlan | None:
        with self._tracer.span("switchboard.plan_repo.get", {ATTR_PLAN_NAME: name}):
            async with self._lock:
                plan = self._plans.get(name)
                return plan.model_copy(deep=True) if plan else None

    async def save(self, plan: MigrationPlan) -> None:
        with self._tracer.span(
            "switchboard.plan_repo.save",
            {ATTR_PLAN_NAME: plan.name, ATTR_PLAN_STATUS: plan.status.value},
        ):
            async with self._lock:
                self._plans[plan.name] = plan.model_copy(deep=True)

    async def delete(self, name: str) -> bool:
        with self._tracer.span("switchboard.plan_repo.delete", {ATTR_PLAN_NAME: name}):
            async with self._lock:
                return self._plans.pop(name, None) is not None

    async def list_all(self) -> list[MigrationPlan]:
        with self._tracer.span("switchboard.plan_repo.list_all", {}):
            async with self._lock:
                plans = sorted(self._plans.values(), key=lambda p: p.created_at)
                return [plan.model_copy(deep=True) for plan in plans]

    async def clear(self) -> None:
        """Clear all plans. Useful for test setup/teardown."""
        async with self._lock:
            self._plans.clear()


class SQLiteMigrationPlanRepository:
    """SQLite implementation of MigrationPlanRepository over aiosqlite."""

    def __init__(
        self,
        connection: aiosqlite.Connection,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection

    async def initialize(self) -> None:
        """Create the migration_plans table if it does not exist."""
        await self._connection.execute(MIGRATION_PLANS_SCHEMA)
        await self._connection.commit()
        logger.info("Initialized SQLite migration_plans table")

    async def get(self, name: str) -> MigrationPlan | None:
        with self._tracer.span(
            "switchboard.plan_repo.get",
            {ATTR_PLAN_NAME: name, ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                "SELECT document FROM migration_plans WHERE name = ?",
                (name,),
            )
            row = await cursor.fetchone()
            return _decode(row[0]) if row else None

    async def save(self, plan: MigrationPlan) -> None:
        with self._tracer.span(
            "switchboard.plan_repo.save",
            {
                ATTR_PLAN_NAME: plan.name,
                ATTR_PLAN_STATUS: plan.status.value,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            await self._connection.execute(
                _UPSERT_SQL.format(params="?, ?, ?, ?"),
                (
                    plan.name,
                    _encode(plan),
                    plan.created_at.isoformat(),
                    plan.updated_at.isoformat(),
                ),
            )
            await self._connection.commit()

    async def delete(self, name: str) -> bool:
        with self._tracer.span(
            "switchboard.plan_repo.delete",
            {ATTR_PLAN_NAME: name, ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                "DELETE FROM migration_plans WHERE name = ?",
                (name,),
            )
            await self._connection.commit()
            return cursor.rowcount > 0

    async def list_all(self) -> list[MigrationPlan]:
        with self._tracer.span("switchboard.plan_repo.list_all", {ATTR_DB_SYSTEM: "sqlite"}):
            cursor = await self._connection.execute(
                "SELECT document FROM migration_plans ORDER BY created_at, name"
            )
            rows = await cursor.fetchall()
            return [_decode(row[0]) for row in rows]


class SQLAlchemyMigrationPlanRepository:
    """
    SQLAlchemy implementation of MigrationPlanRepository.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///switchboard.db")
        >>> repo = SQLAlchemyMigrationPlanRepository(engine)
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
        """Create the migration_plans table if it does not exist."""
        async with connection_scope(self._conn, write=True) as conn:
            await conn.execute(text(MIGRATION_PLANS_SCHEMA))
        logger.info("Initialized %s migration_plans table", self._db_system)

    async def get(self, name: str) -> MigrationPlan | None:
        with self._tracer.span(
            "switchboard.plan_repo.get",
            {ATTR_PLAN_NAME: name, ATTR_DB_SYSTEM: self._db_system},
        ):
            query = text("SELECT document FROM migration_plans WHERE name = :name")
            async with connection_scope(self._conn, write=False) as conn:
                result = await conn.execute(query, {"name": name})
                row = result.fetchone()
            return _decode(row[0]) if row else None

    async def save(self, plan: MigrationPlan) -> None:
        with self._tracer.span(
            "switchboard.plan_repo.save",
            {
                ATTR_PLAN_NAME: plan.name,
                ATTR_PLAN_STATUS: plan.status.value,
                ATTR_DB_SYSTEM: self._db_system,
            },
        ):
            query = text(
                _UPSERT_SQL.format(params=":name, :document, :created_at, :updated_at")
            )
            async with connection_scope(self._conn, write=True) as conn:
                await conn.execute(
                    query,
                    {
                        "name": plan.name,
                        "document": _encode(plan),
                        "created_at": plan.created_at.isoformat(),
                        "updated_at": plan.updated_at.isoformat(),
                    },
                )

    async def delete(self, name: str) -> bool:
        with self._tracer.span(
            "switchboard.plan_repo.delete",
            {ATTR_PLAN_NAME: name, ATTR_DB_SYSTEM: self._db_system},
        ):
            query = text("DELETE FROM migration_plans WHERE name = :name")
            async with connection_scope(self._conn, write=True) as conn:
                result = await conn.execute(query, {"name": name})
            return result.rowcount > 0

    async def list_all(self) -> list[MigrationPlan]:
        with self._tracer.span(
            "switchboard.plan_repo.list_all", {ATTR_DB_SYSTEM: self._db_system}
        ):
            query = text("SELECT document FROM migration_plans ORDER BY created_at, name")
            async with connection_scope(self._conn, write=False) as conn:
                result = await conn.execute(query)
                rows = result.fetchall()
            return [_decode(row[0]) for row in rows]
