from decimal import Decimal
from pathlib import Path

import orjson
import pytest

from pgsimple.config import Config, to_version


def test_config_validation():
    # Valid config
    config = Config(schema_base="app", schema_version="0.2")
    assert config.schema_version == Decimal("0.20000")
    assert config.sql_directory == Path("sql")
    assert config.schema_name == "app"

    # Missing required fields
    with pytest.raises(TypeError):
        Config(schema_base="app")

    with pytest.raises(ValueError):
        Config(schema_base="", schema_version=1)

    with pytest.raises(ValueError):
        Config(schema_base="app", schema_version="one")

    with pytest.raises(ValueError):
        Config(schema_base="app", schema_version=1, environment="staging")

    with pytest.raises(ValueError):
        Config(schema_base="app", schema_version=1, pool_min_size=5, pool_max_size=2)

    with pytest.raises(ValueError):
        Config(schema_base="app", schema_version=1, migration_wait_interval=0)


def test_schema_name_per_environment():
    assert Config(schema_base="app", schema_version=1, environment="development").schema_name == (
        "app_development"
    )

    name = Config(schema_base="app", schema_version=1, environment="test").schema_name
    assert name.startswith("app")
    assert 0 <= int(name[len("app"):]) <= 999

    overridden = Config(schema_base="app", schema_version=1, environment="test", override_env=True)
    assert overridden.schema_name == "app"


def test_config_from_file(tmp_path):
    path = tmp_path / "pgsimple.json"
    path.write_bytes(
        orjson.dumps(
            {
                "schema_base": "app",
                "schema_version": 0.3,
                "sql_directory": str(tmp_path / "sql"),
                "environment": "development",
                "unknown_key": "ignored",
            }
        )
    )

    config = Config.from_file(path)
    assert config.schema_version == to_version("0.3")
    assert config.sql_directory == tmp_path / "sql"
    assert config.schema_name == "app_development"


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("PGSIMPLE_SCHEMA_BASE", "app")
    monkeypatch.setenv("PGSIMPLE_SCHEMA_VERSION", "1.5")
    monkeypatch.setenv("PGSIMPLE_POOL_MAX_SIZE", "4")
    monkeypatch.setenv("PGSIMPLE_MIGRATION_WAIT_INTERVAL", "0.5")
    monkeypatch.setenv("PGSIMPLE_VERBOSE", "true")

    config = Config.from_env()
    assert config.schema_version == Decimal("1.50000")
    assert config.pool_max_size == 4
    assert config.migration_wait_interval == 0.5
    assert config.verbose is True
    assert config.dsn is None
