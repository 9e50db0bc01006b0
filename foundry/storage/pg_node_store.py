"""PostgreSQL Node Store - Persist the node forest with asyncpg."""

from collections.abc import Iterable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

import asyncpg
import structlog

from foundry.config import DATABASE_URL
from foundry.errors import StoreError
from foundry.tree.node import Node

from .node_store import NodeStore

logger = structlog.get_logger()

# Columns that update() may touch, mapped to their table names
_UPDATABLE_COLUMNS = {
    "name": "name",
    "type": "type",
    "description": "description",
    "parent_id": "parent_id",
    "sort_order": "sort_order",
}


def _row_to_node(row: asyncpg.Record) -> Node:
    return Node(
        id=row["id"],
        parent_id=row["parent_id"],
        name=row["name"],
        type=row["type"],
        description=row["description"],
        sort_order=row["sort_order"],
    )


class PgNodeStore(NodeStore):
    """PostgreSQL storage for node records.

    Calls made inside ``transaction()`` share the transaction's connection;
    nested scopes become savepoints.
    """

    def __init__(self, database_url: str | None = None):
        self.database_url = database_url or DATABASE_URL
        self.pool: asyncpg.Pool | None = None
        self._tx_conn: ContextVar[asyncpg.Connection | None] = ContextVar(
            "foundry_tx_conn", default=None
        )

    async def connect(self):
        """Initialize connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=1,
                max_size=5,
            )
        except (OSError, asyncpg.PostgresError) as e:
            raise StoreError(f"Could not connect to node store: {e}") from e
        logger.info("connected_to_database")

    async def close(self):
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("closed_database_connection")

    @asynccontextmanager
    async def connection(self):
        """The active transaction's connection, or one from the pool."""
        conn = self._tx_conn.get()
        if conn is not None:
            yield conn
            return
        if self.pool is None:
            raise StoreError("Node store is not connected")
        async with self.pool.acquire() as conn:
            yield conn

    async def initialize_schema(self):
        """Create the nodes table and its lookup indexes."""
        async with self.connection() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS nodes (
                    id VARCHAR(64) PRIMARY KEY,
                    parent_id VARCHAR(64),
                    name TEXT NOT NULL DEFAULT '',
                    type TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    sort_order INTEGER NOT NULL DEFAULT 0
                )
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS nodes_parent_id_idx
                ON nodes (parent_id)
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS nodes_sort_order_idx
                ON nodes (sort_order)
            """)

            logger.info("initialized_schema")

    @asynccontextmanager
    async def transaction(self):
        outer = self._tx_conn.get()
        if outer is not None:
            async with outer.transaction():
                yield self
            return

        if self.pool is None:
            raise StoreError("Node store is not connected")
        async with self.pool.acquire() as conn:
            token = self._tx_conn.set(conn)
            try:
                async with conn.transaction():
                    yield self
            except asyncpg.PostgresError as e:
                raise StoreError(f"Transaction failed: {e}") from e
            finally:
                self._tx_conn.reset(token)

    async def _fetch(self, query: str, *args) -> list[asyncpg.Record]:
        try:
            async with self.connection() as conn:
                return await conn.fetch(query, *args)
        except asyncpg.PostgresError as e:
            raise StoreError(str(e)) from e

    async def list_all(self) -> list[Node]:
        rows = await self._fetch("SELECT * FROM nodes ORDER BY sort_order")
        return [_row_to_node(r) for r in rows]

    async def get(self, node_id: str) -> Node | None:
        rows = await self._fetch("SELECT * FROM nodes WHERE id = $1", node_id)
        return _row_to_node(rows[0]) if rows else None

    async def children_of(self, parent_id: str | None) -> list[Node]:
        rows = await self._fetch(
            "SELECT * FROM nodes WHERE parent_id IS NOT DISTINCT FROM $1 ORDER BY sort_order",
            parent_id,
        )
        return [_row_to_node(r) for r in rows]

    async def count_children(self, parent_id: str | None) -> int:
        rows = await self._fetch(
            "SELECT count(*) FROM nodes WHERE parent_id IS NOT DISTINCT FROM $1",
            parent_id,
        )
        return rows[0][0]

    async def insert(self, nodes: Iterable[Node]) -> None:
        records = [
            (n.id, n.parent_id, n.name, n.type, n.description, n.sort_order)
            for n in nodes
        ]
        if not records:
            return
        try:
            async with self.connection() as conn:
                await conn.executemany(
                    """
                    INSERT INTO nodes (id, parent_id, name, type, description, sort_order)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    """,
                    records,
                )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Insert failed: {e}") from e

    async def update(self, node_id: str, changes: dict[str, Any]) -> bool:
        if not changes:
            return await self.get(node_id) is not None

        unknown = set(changes) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update fields {sorted(unknown)}; allowed: {sorted(_UPDATABLE_COLUMNS)}")

        columns = list(changes)
        assignments = ", ".join(
            f"{_UPDATABLE_COLUMNS[col]} = ${i + 2}" for i, col in enumerate(columns)
        )
        try:
            async with self.connection() as conn:
                status = await conn.execute(
                    f"UPDATE nodes SET {assignments} WHERE id = $1",
                    node_id,
                    *(changes[c] for c in columns),
                )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Update failed: {e}") from e
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        return status.split()[-1] != "0"

    async def delete_many(self, node_ids: Iterable[str]) -> int:
        ids = list(node_ids)
        if not ids:
            return 0
        try:
            async with self.connection() as conn:
                status = await conn.execute(
                    "DELETE FROM nodes WHERE id = ANY($1::varchar[])", ids
                )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Delete failed: {e}") from e
        return int(status.split()[-1])

    async def replace_all(self, nodes: Iterable[Node]) -> None:
        async with self.transaction():
            async with self.connection() as conn:
                await conn.execute("DELETE FROM nodes")
            await self.insert(nodes)
