from __future__ import annotations


class PgSimpleError(Exception):
    pass


class DbError(PgSimpleError):
    """Wraps a driver error together with the statement that raised it."""

    status = 500

    def __init__(self, error: Exception | str, sql: str):
        self.original = error if isinstance(error, Exception) else None
        self.sql = sql
        message = str(error)
        super().__init__(f"Db Error: {message} \nSQL: {sql}")


class NoRowsFoundError(DbError):
    status = 404


class InvalidQueryError(PgSimpleError):
    pass


class CursorDecodeError(InvalidQueryError):
    pass


class MigrationError(PgSimpleError):
    pass


class MigrationParseError(MigrationError):
    pass


class MigrationTimeoutError(MigrationError):
    pass


class SchemaAheadError(MigrationError):
    pass


class MigrationScriptError(MigrationError):
    def __init__(self, filename: str, sql: str, error: Exception):
        self.filename = filename
        self.sql = sql
        self.original = error
        statement = sql.strip()
        if len(statement) > 500:
            statement = statement[:500] + " ..."
        super().__init__(f"sql script {filename} failed: {error}\nSQL: {statement}")
