import asyncio
from typing import Optional

import typer
from loguru import logger
from typer import Option, Typer

from pgsimple.config import Config, to_version
from pgsimple.database import Database
from pgsimple.log import configure_logging
from pgsimple.migrations.catalog import MigrationCatalog, MigrationsInfo

migration_app = Typer()

app = Typer()
app.add_typer(migration_app, name="migrate")


async def _migrate(config_path: str):
    config = Config.from_file(config_path)
    configure_logging(config.verbose)
    db = Database(config)
    try:
        await db.sync()
        logger.info(f"schema {db.schema_name} is at version {await db.get_version()}")
    finally:
        await db.close()


async def _plan(config_path: str, from_version: Optional[str]):
    config = Config.from_file(config_path)
    catalog = await MigrationCatalog.load(config.sql_directory)
    target = config.schema_version

    if from_version is None:
        # a new schema only gets the latest definitions, never pre/post scripts
        info = catalog.info_for(target)
        infos = (
            [MigrationsInfo(target, idempotents=info.idempotents, snapshots=info.snapshots)]
            if info is not None
            else []
        )
    else:
        infos = catalog.migrations_between(to_version(from_version), target)

    if not infos:
        typer.echo(f"nothing to apply for version {target}")
        return

    for info in infos:
        typer.echo(f"v{info.version}")
        for label, files in (
            ("pre", info.pre_migrations),
            ("idempotent", info.idempotents),
            ("snap", info.snapshots),
            ("post", info.post_migrations),
        ):
            for file in files:
                typer.echo(f"  {label:<10} {file.filename}")


async def _status(config_path: str):
    config = Config.from_file(config_path)
    configure_logging(config.verbose)
    db = Database(config)
    try:
        await db.initialize()
        for record in await db.version_store.records():
            state = "in progress" if record.in_progress else f"deployed {record.deployed_at}"
            typer.echo(f"v{record.version}  started {record.deploy_start}  {state}")
    finally:
        await db.close()


@migration_app.command()
def up(config: str = Option(..., "--config", "-c")):
    asyncio.run(_migrate(config))


@migration_app.command()
def plan(
    config: str = Option(..., "--config", "-c"),
    from_version: Optional[str] = Option(None, "--from"),
):
    asyncio.run(_plan(config, from_version))


@migration_app.command()
def status(config: str = Option(..., "--config", "-c")):
    asyncio.run(_status(config))
