"""Base repository class for the local SQLite store.

Provides connection management and async execution so that callers on
the event loop never block on disk I/O.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Generic, TypeVar

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Base repository with common database operations.

    Provides:
    - Connection management (one short-lived connection per call)
    - Async execution via run_in_executor
    - Lazy schema creation from the subclass's SCHEMA statements

    Subclasses set SCHEMA and implement entity-specific operations.
    """

    SCHEMA: tuple[str, ...] = ()

    def __init__(self, db_path: str | Path) -> None:
        """Initialize repository with database path.

        Args:
            db_path: Path to SQLite database file. Parent directories are
                created on first use.
        """
        self.db_path = Path(db_path).expanduser()
        self._schema_ready = False

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[sqlite3.Connection]:
        """Context manager for database connections.

        Yields:
            SQLite connection with row factory set to sqlite3.Row.
        """
        loop = asyncio.get_running_loop()

        def _connect() -> sqlite3.Connection:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            return sqlite3.connect(self.db_path, check_same_thread=False)

        conn = await loop.run_in_executor(None, _connect)
        conn.row_factory = sqlite3.Row

        try:
            yield conn
        finally:
            await loop.run_in_executor(None, conn.close)

    async def _ensure_schema(self) -> None:
        """Create the subclass's tables once per repository instance."""
        if self._schema_ready or not self.SCHEMA:
            return
        async with self._connection() as conn:
            loop = asyncio.get_running_loop()

            def _run():
                for statement in self.SCHEMA:
                    conn.execute(statement)
                conn.commit()

            await loop.run_in_executor(None, _run)
        self._schema_ready = True

    async def _execute(
        self,
        query: str,
        params: tuple = (),
        fetch: str = "none",
    ) -> Any:
        """Execute a query with optional fetch.

        Args:
            query: SQL query string.
            params: Query parameters.
            fetch: Fetch mode - "none", "one", "all".

        Returns:
            Query result based on fetch mode.
        """
        await self._ensure_schema()
        async with self._connection() as conn:
            loop = asyncio.get_running_loop()

            def _run():
                cursor = conn.execute(query, params)
                if fetch == "one":
                    return cursor.fetchone()
                elif fetch == "all":
                    return cursor.fetchall()
                conn.commit()
                return cursor.rowcount

            return await loop.run_in_executor(None, _run)
