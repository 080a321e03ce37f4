"""
Database Manager - PostgreSQL backed resource store.

Stores integration and connector records as JSONB documents keyed by kind and id and
broadcasts a change event after every successful mutation.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import asyncpg

from events import ChangeAction, EventBus
from models import RECORD_TYPES, Kind, Record
from store import EntityExistsError, EntityNotFoundError, ResourceStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    kind VARCHAR(64) NOT NULL,
    id VARCHAR(255) NOT NULL,
    data JSONB NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMP NOT NULL DEFAULT NOW(),
    PRIMARY KEY (kind, id)
)
"""


class DatabaseManager(ResourceStore):
    """Manages PostgreSQL operations for the resource store."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 5,
        max_pool_size: int = 20,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Create the records table if it does not exist."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)
        logger.info("Database schema initialized")

    @staticmethod
    def _parse_row(kind: Kind, row: Any) -> Record:
        data = row["data"]
        if isinstance(data, str):
            data = json.loads(data)
        return RECORD_TYPES[kind].from_document(data)

    @staticmethod
    def _affected_rows(status: str) -> int:
        # asyncpg returns command tags such as "UPDATE 1"
        try:
            return int(status.split()[-1])
        except (AttributeError, IndexError, ValueError):
            return 0

    async def fetch(self, kind: Kind, record_id: str) -> Optional[Record]:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM records WHERE kind = $1 AND id = $2",
                kind.value,
                record_id,
            )
            if not row:
                return None
            return self._parse_row(kind, row)

    async def fetch_all(self, kind: Kind) -> List[Record]:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT data FROM records WHERE kind = $1 ORDER BY created_at, id",
                kind.value,
            )
            return [self._parse_row(kind, row) for row in rows]

    async def create(self, record: Record) -> Record:
        self._ensure_connected()
        if record.id is None:
            record = record.model_copy(update={"id": str(uuid.uuid4())})

        async with self.pool.acquire() as conn:
            inserted = await conn.fetchval(
                """
                INSERT INTO records (kind, id, data)
                VALUES ($1, $2, $3)
                ON CONFLICT (kind, id) DO NOTHING
                RETURNING id
                """,
                record.kind.value,
                record.id,
                record.model_dump_json(),
            )

        if inserted is None:
            raise EntityExistsError(
                f"There already exists a {record.kind.value} with id {record.id}"
            )

        logger.info(f"Created {record.kind.value} {record.id}")
        self._broadcast(ChangeAction.CREATED, record.kind, record.id)
        return record

    async def update(self, record: Record) -> None:
        self._ensure_connected()
        if record.id is None:
            raise EntityNotFoundError("Setting the id on the entity is required for updates")

        async with self.pool.acquire() as conn:
            status = await conn.execute(
                """
                UPDATE records SET data = $3, updated_at = NOW()
                WHERE kind = $1 AND id = $2
                """,
                record.kind.value,
                record.id,
                record.model_dump_json(),
            )

        if self._affected_rows(status) == 0:
            raise EntityNotFoundError(
                f"Can not find {record.kind.value} with id {record.id}"
            )

        self._broadcast(ChangeAction.UPDATED, record.kind, record.id)

    async def delete(self, kind: Kind, record_id: str) -> bool:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM records WHERE kind = $1 AND id = $2",
                kind.value,
                record_id,
            )

        if self._affected_rows(status) == 0:
            return False

        logger.info(f"Deleted {kind.value} {record_id}")
        self._broadcast(ChangeAction.DELETED, kind, record_id)
        return True
