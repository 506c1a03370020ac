"""
Repositories for switchboard persistence.

Each repository is a Protocol with in-memory, SQLite (aiosqlite) and
SQLAlchemy async implementations.
"""

from switchboard.repositories.plans import (
    MIGRATION_PLANS_SCHEMA,
    InMemoryMigrationPlanRepository,
    MigrationPlanRepository,
    SQLAlchemyMigrationPlanRepository,
    SQLiteMigrationPlanRepository,
)
from switchboard.repositories.status import (
    MIGRATION_STATUS_SCHEMA,
    InMemoryMigrationStatusRepository,
    MigrationStatusRepository,
    SQLAlchemyMigrationStatusRepository,
    SQLiteMigrationStatusRepository,
)

__all__ = [
    "MIGRATION_PLANS_SCHEMA",
    "MIGRATION_STATUS_SCHEMA",
    "MigrationPlanRepository",
    "InMemoryMigrationPlanRepository",
    "SQLiteMigrationPlanRepository",
    "SQLAlchemyMigrationPlanRepository",
    "MigrationStatusRepository",
    "InMemoryMigrationStatusRepository",
    "SQLiteMigrationStatusRepository",
    "SQLAlchemyMigrationStatusRepository",
]
