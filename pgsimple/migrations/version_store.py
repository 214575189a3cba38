from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import asyncpg
import orjson
from loguru import logger

from pgsimple.errors import DbError

if TYPE_CHECKING:
    from pgsimple.database import Database

CREATE_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS version (
    version numeric(10, 5) UNIQUE,
    deploy_start timestamptz DEFAULT current_timestamp,
    deployed_ts timestamptz,
    payload jsonb
)
"""


@dataclass(frozen=True)
class VersionRecord:
    version: Decimal
    deploy_start: datetime | None
    deployed_at: datetime | None = None
    payload: Any = None

    @property
    def in_progress(self) -> bool:
        return self.deployed_at is None

    @classmethod
    def from_row(cls, row) -> "VersionRecord":
        payload = row["payload"]
        return cls(
            version=row["version"],
            deploy_start=row["deploy_start"],
            deployed_at=row["deployed_ts"],
            payload=orjson.loads(payload) if isinstance(payload, str) else payload,
        )


class VersionStore:
    """One row per schema version. A row without ``deployed_ts`` is a migration
    in progress, and the unique constraint on ``version`` makes inserting it
    the lock."""

    def __init__(self, db: Database):
        self.db = db

    async def initialize(self):
        try:
            await self.db.execute(CREATE_VERSION_TABLE)
            logger.debug("version table created")
        except DbError as e:
            # concurrent CREATE TABLE IF NOT EXISTS can still collide in pg_type
            if not isinstance(e.original, asyncpg.UniqueViolationError):
                raise
            logger.debug(f"version table already exists: {e.original}")

    async def get_version(self) -> Decimal | None:
        """The version of the remote schema, None for a schema never set up."""
        return await self.db.fetchval(
            "SELECT version FROM version ORDER BY deployed_ts DESC NULLS LAST LIMIT 1"
        )

    async def records(self) -> list[VersionRecord]:
        rows = await self.db.fetch(
            "SELECT version, deploy_start, deployed_ts, payload FROM version ORDER BY version"
        )
        return [VersionRecord.from_row(r) for r in rows]

    async def in_progress(self) -> list[VersionRecord]:
        rows = await self.db.fetch(
            "SELECT version, deploy_start, deployed_ts, payload FROM version "
            "WHERE deployed_ts IS NULL AND version IS NOT NULL ORDER BY deploy_start DESC"
        )
        return [VersionRecord.from_row(r) for r in rows]

    async def claim(self, version: Decimal) -> bool:
        """Insert the row for ``version``; False when another process already holds it."""
        try:
            await self.db.execute("INSERT INTO version (version) VALUES ($1)", version)
        except DbError as e:
            if isinstance(e.original, asyncpg.UniqueViolationError):
                return False
            raise
        return True

    async def finish(self, conn, version: Decimal):
        await conn.execute(
            "UPDATE version SET deployed_ts = current_timestamp WHERE version = $1", version
        )

    async def abandon(self, conn, version: Decimal):
        await conn.execute("DELETE FROM version WHERE version = $1", version)
