from __future__ import annotations

import asyncio
import enum
from decimal import Decimal
from typing import TYPE_CHECKING, Callable

from loguru import logger

from pgsimple.errors import (
    MigrationError,
    MigrationScriptError,
    MigrationTimeoutError,
    SchemaAheadError,
)
from pgsimple.migrations.catalog import AnnotatedSqlFile, MigrationCatalog, MigrationsInfo, by_base_name
from pgsimple.migrations.version_store import VersionStore

if TYPE_CHECKING:
    from pgsimple.database import Database

MIGRATION_SUCCESS = "successfully migrated"
MIGRATION_FAILURE = "failed to migrate"


class SchemaState(enum.Enum):
    UNKNOWN = "unknown"
    BEHIND = "behind"
    AT_TARGET = "at_target"
    AHEAD = "ahead"


def schema_state(remote: Decimal | None, target: Decimal) -> SchemaState:
    if remote is None:
        return SchemaState.UNKNOWN
    if remote < target:
        return SchemaState.BEHIND
    if remote == target:
        return SchemaState.AT_TARGET
    return SchemaState.AHEAD


def _names(files: list[AnnotatedSqlFile]) -> str:
    return ", ".join(f.filename for f in files)


class MigrationCoordinator:
    """Brings the remote schema to ``target`` exactly once across processes.

    Whoever inserts the version row for ``target`` migrates; everyone else
    waits for the outcome on the ``channel`` notification channel.
    """

    def __init__(
        self,
        db: Database,
        catalog: MigrationCatalog,
        store: VersionStore,
        target: Decimal,
        channel: str,
        wait_retries: int = 10,
        wait_interval: float = 1.0,
        on_migrate: Callable[[], None] | None = None,
    ):
        self.db = db
        self.catalog = catalog
        self.store = store
        self.target = target
        self.channel = channel
        self.wait_retries = wait_retries
        self.wait_interval = wait_interval
        self.on_migrate = on_migrate

    async def version_up(self) -> SchemaState:
        for _ in range(self.wait_retries):
            await self.await_migration_end()
            remote = await self.store.get_version()
            state = schema_state(remote, self.target)

            if state is SchemaState.AT_TARGET:
                logger.info(f"db version is already {remote}")
                return state
            if state is SchemaState.AHEAD:
                raise SchemaAheadError(
                    f"App db version {self.target} too low for installed db version {remote}"
                )

            if not await self.store.claim(self.target):
                # someone else owns this version, wait for them and look again
                logger.debug(f"db migration to version {self.target} already taking place")
                continue

            if self.on_migrate is not None:
                self.on_migrate()
            await self._migrate(state, remote)
            return state

        raise MigrationTimeoutError(f"could not claim the migration to version {self.target}")

    async def await_migration_end(self):
        for attempt in range(self.wait_retries):
            logger.debug(f"checking for migrations in progress (try: {attempt})")
            async with self.db.listen(self.channel) as subscription:
                in_progress = await self.store.in_progress()
                if not in_progress:
                    return

                versions = ", ".join(str(r.version) for r in in_progress)
                logger.info(f"migrations possibly in progress: {versions}")
                try:
                    payload = await subscription.wait(self.wait_interval)
                except asyncio.TimeoutError:
                    continue

            if payload == MIGRATION_FAILURE:
                raise MigrationTimeoutError("another migration recently failed, aborting")
            logger.debug(f"received '{payload}' on {self.channel}")

        raise MigrationTimeoutError(
            f"failed to wait for the migration to end after {self.wait_retries} tries"
        )

    async def _migrate(self, state: SchemaState, remote: Decimal | None):
        try:
            if state is SchemaState.UNKNOWN:
                await self._set_up_new()
            else:
                await self._step_forward(remote)
        except BaseException:
            await self._mark_migration_end(success=False)
            raise
        await self._mark_migration_end(success=True)

        if state is SchemaState.UNKNOWN:
            logger.opt(colors=True).info(f"<g>db {self.target} set up for the first time</g>")
        else:
            logger.opt(colors=True).info(f"<g>migration from {remote} to {self.target} done</g>")

    async def _set_up_new(self):
        info = self.catalog.info_for(self.target)
        if info is None:
            raise MigrationError(f"No SQL files found for version {self.target}")
        await self._apply_idempotents([*info.idempotents, *info.snapshots])

    async def _step_forward(self, remote: Decimal):
        for info in self.catalog.migrations_between(remote, self.target):
            await self._apply_version(info)

    async def _apply_version(self, info: MigrationsInfo):
        idempotents = [*info.idempotents, *info.snapshots]
        logger.debug(
            f"migrating to {info.version}: "
            f"pre [{_names(info.pre_migrations)}], "
            f"idempotents/snapshots [{_names(idempotents)}], "
            f"post [{_names(info.post_migrations)}]"
        )
        if info.pre_migrations:
            await self._apply_migrations(info.pre_migrations)
            logger.info(f"applied pre migration scripts: {_names(info.pre_migrations)}")
        await self._apply_idempotents(idempotents)
        if info.post_migrations:
            await self._apply_migrations(info.post_migrations)
            logger.info(f"applied post migration scripts: {_names(info.post_migrations)}")

    async def _apply_idempotents(self, files: list[AnnotatedSqlFile]):
        if not files:
            return
        for file in by_base_name(files):
            try:
                await self.db.execute(file.contents)
            except Exception as e:
                if "already exists" not in str(e):
                    logger.error(f"unexpected error applying idempotent sql script {file.filename}: {e}")
                    raise MigrationScriptError(file.filename, file.contents, e) from e
                logger.warning(
                    f"idempotent sql script {file.filename} threw an error, assuming it was "
                    f"already applied (use 'IF NOT EXISTS' clauses): {e}"
                )
        logger.info(f"applied idempotent scripts: {_names(files)}")

    async def _apply_migrations(self, files: list[AnnotatedSqlFile]):
        """Apply ``files`` in one transaction; the first failure rolls all of them back."""
        async with self.db.transact() as conn:
            for file in by_base_name(files):
                try:
                    await conn.execute(file.contents)
                except Exception as e:
                    logger.error(
                        f"unexpected error migrating to version {file.version} "
                        f"with sql script {file.filename}: {e}"
                    )
                    raise MigrationScriptError(file.filename, file.contents, e) from e

    async def _mark_migration_end(self, success: bool):
        async with self.db.transact() as conn:
            if success:
                await self.store.finish(conn, self.target)
            else:
                await self.store.abandon(conn, self.target)
            await self.db.notify(
                conn, self.channel, MIGRATION_SUCCESS if success else MIGRATION_FAILURE
            )
