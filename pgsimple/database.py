from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator

import asyncpg
from loguru import logger

from pgsimple.config import Config, to_version
from pgsimple.errors import DbError, NoRowsFoundError
from pgsimple.keyset import Keyset
from pgsimple.migrations.catalog import MigrationCatalog
from pgsimple.migrations.coordinator import MigrationCoordinator
from pgsimple.migrations.version_store import VersionStore
from pgsimple.sql import quote_ident


def _one_line(sql: str) -> str:
    return " ".join(sql.split())


class Subscription:
    """LISTEN on a channel for as long as the context is open.

    The listening connection is borrowed from the pool and handed back on exit.
    """

    def __init__(self, pool: asyncpg.Pool, channel: str):
        self.channel = channel
        self._pool = pool
        self._conn: asyncpg.Connection | None = None
        self._payloads: asyncio.Queue[str] = asyncio.Queue()

    def _on_notification(self, connection, pid, channel, payload):
        self._payloads.put_nowait(payload)

    async def __aenter__(self) -> "Subscription":
        self._conn = await self._pool.acquire()
        try:
            await self._conn.add_listener(self.channel, self._on_notification)
        except BaseException:
            await self._pool.release(self._conn)
            self._conn = None
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._conn is None:
            return
        try:
            await self._conn.remove_listener(self.channel, self._on_notification)
        finally:
            await self._pool.release(self._conn)
            self._conn = None

    async def wait(self, timeout: float | None = None) -> str:
        """Next payload on the channel; raises ``asyncio.TimeoutError`` after ``timeout``."""
        return await asyncio.wait_for(self._payloads.get(), timeout)


class Database:
    """Schema scoped access to a PostgreSQL database.

    Every pooled connection has its search path set to the configured schema
    (then ``public``) and uses UTC. ``sync`` brings the schema up to
    ``config.schema_version`` from the SQL files in ``config.sql_directory``.
    """

    def __init__(self, config: Config):
        self.config = config
        self._pool: asyncpg.Pool | None = None
        self.version_store = VersionStore(self)

    @property
    def schema_name(self) -> str:
        return self.config.schema_name

    @property
    def schema_version(self) -> Decimal:
        return self.config.schema_version

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database is not initialized, call initialize() first")
        return self._pool

    async def initialize(self):
        if self._pool is not None:
            return

        self._pool = await asyncpg.create_pool(
            self.config.dsn,
            min_size=self.config.pool_min_size,
            max_size=self.config.pool_max_size,
            command_timeout=self.config.command_timeout,
            server_settings={
                "search_path": f"{quote_ident(self.schema_name)}, public",
                "timezone": "UTC",
            },
        )
        await self._extensions_up()
        await self._schema_up()
        await self.version_store.initialize()

    async def close(self):
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def drop_schema(self):
        logger.info(f"dropping schema {self.schema_name}")
        await self.execute(f"DROP SCHEMA IF EXISTS {quote_ident(self.schema_name)} CASCADE")

    async def _extensions_up(self):
        try:
            await self.pool.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm SCHEMA public")
        except asyncpg.PostgresError as e:
            logger.error(f"could not enable extensions: {e}")

    async def _schema_up(self):
        # no IF NOT EXISTS so that we can log whether the schema was created
        try:
            await self.pool.execute(f"CREATE SCHEMA {quote_ident(self.schema_name)}")
            logger.info(f"created schema {self.schema_name}")
        except (asyncpg.DuplicateSchemaError, asyncpg.UniqueViolationError):
            logger.info(f"schema {self.schema_name} already exists")

    async def _run(self, method: str, sql: str, *args) -> Any:
        start = time.perf_counter()
        try:
            result = await getattr(self.pool, method)(sql, *args)
        except asyncpg.PostgresError as e:
            raise DbError(e, sql) from e

        if self.config.verbose:
            duration = (time.perf_counter() - start) * 1000
            logger.debug(f'executed query "{_one_line(sql)}" in {duration:.1f}ms')
        return result

    async def execute(self, sql: str, *args) -> str:
        return await self._run("execute", sql, *args)

    async def fetch(self, sql: str, *args) -> list[asyncpg.Record]:
        return await self._run("fetch", sql, *args)

    async def fetchrow(self, sql: str, *args) -> asyncpg.Record | None:
        return await self._run("fetchrow", sql, *args)

    async def fetchval(self, sql: str, *args) -> Any:
        return await self._run("fetchval", sql, *args)

    async def find(self, sql: str, *args) -> list[asyncpg.Record]:
        """All rows matching the query; raises ``NoRowsFoundError`` when there are none."""
        rows = await self.fetch(sql, *args)
        if not rows:
            raise NoRowsFoundError("no rows returned", sql)
        return rows

    async def one(self, sql: str, *args) -> asyncpg.Record:
        rows = await self.find(sql, *args)
        return rows[0]

    @asynccontextmanager
    async def transact(self) -> AsyncIterator[asyncpg.Connection]:
        """A connection inside a transaction, committed on exit and rolled back on error."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    def listen(self, channel: str) -> Subscription:
        return Subscription(self.pool, channel)

    async def notify(self, conn: asyncpg.Connection, channel: str, payload: str):
        await conn.execute("SELECT pg_notify($1, $2)", channel, payload)

    def get_table(self, table: str) -> Keyset:
        return Keyset(self, table)

    async def get_version(self) -> Decimal | None:
        return await self.version_store.get_version()

    async def sync(self) -> "Database":
        """Apply whatever SQL scripts the remote schema is missing."""
        await self.initialize()
        catalog = await MigrationCatalog.load(self.config.sql_directory)
        coordinator = MigrationCoordinator(
            self,
            catalog,
            self.version_store,
            self.schema_version,
            channel=self.config.schema_base,
            wait_retries=self.config.migration_wait_retries,
            wait_interval=self.config.migration_wait_interval,
        )
        await coordinator.version_up()
        logger.info("db version up to date")
        return self

    async def migrate_to(self, version: Decimal | float | str) -> "Database":
        self.config.schema_version = to_version(version)
        return await self.sync()
