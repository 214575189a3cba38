from pgsimple.migrations.catalog import AnnotatedSqlFile, MigrationCatalog, MigrationsInfo
from pgsimple.migrations.coordinator import (
    MIGRATION_FAILURE,
    MIGRATION_SUCCESS,
    MigrationCoordinator,
    SchemaState,
)
from pgsimple.migrations.version_store import VersionRecord, VersionStore

__all__ = [
    "AnnotatedSqlFile",
    "MIGRATION_FAILURE",
    "MIGRATION_SUCCESS",
    "MigrationCatalog",
    "MigrationCoordinator",
    "MigrationsInfo",
    "SchemaState",
    "VersionRecord",
    "VersionStore",
]
