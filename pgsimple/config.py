from __future__ import annotations

import os
import random
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import orjson

from pgsimple.types import Environment

VERSION_QUANTUM = Decimal("0.00001")
ENVIRONMENTS = ("production", "development", "test")


def to_version(value: Any) -> Decimal:
    """Versions are numeric(10, 5) in the database; compare them at that precision."""
    try:
        return Decimal(str(value)).quantize(VERSION_QUANTUM)
    except InvalidOperation as e:
        raise ValueError(f"Invalid schema version: {value!r}") from e


@dataclass
class Config:
    schema_base: str
    schema_version: Decimal
    sql_directory: Path = Path("sql")
    # None lets libpq style PG* environment variables pick the server
    dsn: str | None = None
    environment: Environment = "production"
    override_env: bool = False
    pool_min_size: int = 1
    pool_max_size: int = 10
    command_timeout: float = 60.0
    migration_wait_retries: int = 10
    migration_wait_interval: float = 1.0
    verbose: bool = False
    schema_name: str = field(init=False)

    def __post_init__(self):
        if not self.schema_base:
            raise ValueError("'schema_base' is required")
        if self.environment not in ENVIRONMENTS:
            raise ValueError(f"Invalid environment: {self.environment}")
        if self.pool_min_size < 1 or self.pool_max_size < self.pool_min_size:
            raise ValueError("'pool_max_size' must be >= 'pool_min_size' >= 1")
        if self.migration_wait_retries < 1 or self.migration_wait_interval <= 0:
            raise ValueError("migration wait retries and interval must be positive")

        self.schema_version = to_version(self.schema_version)
        self.sql_directory = Path(self.sql_directory)
        self.schema_name = self._make_schema_name()

    def _make_schema_name(self) -> str:
        if self.environment == "production" or self.override_env:
            return self.schema_base
        if self.environment == "test":
            return f"{self.schema_base}{random.randint(0, 999)}"
        return f"{self.schema_base}_development"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        # unknown keys are ignored rather than rejected by the dataclass
        names = {f.name for f in fields(cls) if f.init}
        return cls(**{k: v for k, v in data.items() if k in names})

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        with open(path, "rb") as f:
            return cls.from_dict(orjson.loads(f.read()))

    @classmethod
    def from_env(cls, prefix: str = "PGSIMPLE_") -> "Config":
        data: dict[str, Any] = {}
        for f in fields(cls):
            if not f.init:
                continue
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            if f.name in ("pool_min_size", "pool_max_size", "migration_wait_retries"):
                data[f.name] = int(raw)
            elif f.name in ("command_timeout", "migration_wait_interval"):
                data[f.name] = float(raw)
            elif f.name in ("override_env", "verbose"):
                data[f.name] = raw.lower() in ("1", "true", "yes")
            else:
                data[f.name] = raw
        return cls(**data)
