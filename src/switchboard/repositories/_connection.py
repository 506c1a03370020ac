"""
Connection scoping for the SQLAlchemy repositories.

The SQLAlchemy repositories accept an AsyncEngine (they open and close
their own connections) or an AsyncConnection owned by the caller (they
run inside whatever transaction the caller has open).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


def dialect_name(conn: AsyncConnection | AsyncEngine) -> str:
    """Dialect of the underlying engine, e.g. "postgresql" or "sqlite"."""
    engine = conn if isinstance(conn, AsyncEngine) else conn.engine
    return engine.dialect.name


@asynccontextmanager
async def connection_scope(
    conn: AsyncConnection | AsyncEngine,
    *,
    write: bool,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection for one repository call.

    Args:
        conn: Engine or caller-owned connection
        write: For an engine, run in a transaction committed on exit;
            reads get a plain connection. Ignored for a connection.
    """
    if isinstance(conn, AsyncConnection):
        yield conn
    elif write:
        async with conn.begin() as connection:
            yield connection
    else:
        async with conn.connect() as connection:
            yield connection
