from pgsimple.config import Config
from pgsimple.database import Database
from pgsimple.errors import (
    CursorDecodeError,
    DbError,
    InvalidQueryError,
    MigrationError,
    MigrationParseError,
    MigrationScriptError,
    MigrationTimeoutError,
    NoRowsFoundError,
    PgSimpleError,
    SchemaAheadError,
)
from pgsimple.keyset import Keyset

__all__ = [
    "Config",
    "CursorDecodeError",
    "Database",
    "DbError",
    "InvalidQueryError",
    "Keyset",
    "MigrationError",
    "MigrationParseError",
    "MigrationScriptError",
    "MigrationTimeoutError",
    "NoRowsFoundError",
    "PgSimpleError",
    "SchemaAheadError",
]
