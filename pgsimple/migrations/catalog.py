"""SQL script discovery and selection.

File names follow ``<base>[.v<major>[.<minor>]][.pre|.post|.snap].sql``:

* ``users.sql`` is idempotent and re-applied at the target version.
* ``users.v0.2.snap.sql`` is the full definition of ``users`` at 0.2 and
  supersedes older snapshots and the idempotent script below that version.
* ``users.v0.2.pre.sql`` / ``users.v0.2.post.sql`` run once, in a
  transaction, before / after the idempotent scripts of 0.2.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

import aiofiles
from loguru import logger

from pgsimple.config import to_version
from pgsimple.errors import MigrationParseError
from pgsimple.types import SqlFileType

FILENAME_REGEX = re.compile(
    r"^(?P<base>[^.]+)(?:\.v(?P<version>\d+(?:\.\d+)?))?(?:\.(?P<type>pre|post|snap))?\.sql$"
)


@dataclass(frozen=True)
class AnnotatedSqlFile:
    filename: str
    base_name: str
    contents: str
    # None for idempotent scripts: they apply at whatever the target version is
    version: Decimal | None
    type: SqlFileType


@dataclass
class MigrationsInfo:
    version: Decimal
    idempotents: list[AnnotatedSqlFile] = field(default_factory=list)
    pre_migrations: list[AnnotatedSqlFile] = field(default_factory=list)
    post_migrations: list[AnnotatedSqlFile] = field(default_factory=list)
    snapshots: list[AnnotatedSqlFile] = field(default_factory=list)


def annotate(filename: str, contents: str) -> AnnotatedSqlFile:
    name = Path(filename).name
    match = FILENAME_REGEX.match(name)
    if not match:
        raise MigrationParseError(
            f"Expected {filename} to be named <base>.sql or <base>.v<version>.<pre|post|snap>.sql"
        )

    version, file_type = match.group("version"), match.group("type")
    if version is None and file_type is not None:
        raise MigrationParseError(f"{filename} is a {file_type} script without a version")

    if version is None:
        return AnnotatedSqlFile(filename, match.group("base"), contents, None, "idempotent")
    # versioned files without a marker are pre migrations
    return AnnotatedSqlFile(
        filename, match.group("base"), contents, to_version(version), file_type or "pre"
    )


def by_base_name(files: list[AnnotatedSqlFile]) -> list[AnnotatedSqlFile]:
    return sorted(files, key=lambda f: f.base_name)


class MigrationCatalog:
    def __init__(self, files: list[AnnotatedSqlFile]):
        self.files = files

    @classmethod
    async def load(cls, directory: str | Path) -> "MigrationCatalog":
        directory = Path(directory)
        paths = sorted(directory.rglob("*.sql"), key=lambda p: p.relative_to(directory).as_posix())

        async def _read(path: Path) -> AnnotatedSqlFile:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                contents = await f.read()
            return annotate(path.relative_to(directory).as_posix(), contents)

        files = list(await asyncio.gather(*(_read(p) for p in paths)))
        logger.debug(f"found {len(files)} sql files in {directory}")
        return cls(files)

    def _has_snap_at(self, base_name: str, version: Decimal) -> bool:
        return any(
            f.type == "snap" and f.version == version and f.base_name == base_name
            for f in self.files
        )

    def _has_snap_at_or_below(self, base_name: str, version: Decimal) -> bool:
        return any(
            f.type == "snap" and f.version <= version and f.base_name == base_name
            for f in self.files
        )

    def _is_most_recent(self, base_name: str, file_version: Decimal, target: Decimal) -> bool:
        """No snapshot or idempotent of ``base_name`` lands in (file_version, target]."""
        if file_version > target:
            return False
        for f in self.files:
            if f.base_name != base_name or f.type not in ("snap", "idempotent"):
                continue
            # idempotents count as being at the version looked at
            version = f.version if f.version is not None else target
            if file_version < version <= target:
                return False
        return True

    def _is_relevant(self, file: AnnotatedSqlFile, version: Decimal, target: Decimal) -> bool:
        if file.type == "idempotent":
            if version == target:
                return not self._has_snap_at(file.base_name, version)
            return not self._has_snap_at_or_below(
                file.base_name, version
            ) and self._is_most_recent(file.base_name, version, version)
        if file.type == "snap":
            return self._is_most_recent(file.base_name, file.version, version)
        return file.version == version

    def migrations_info(self, target: Decimal) -> list[MigrationsInfo]:
        """What to apply at each version found in the catalog, ascending, for a ``target`` schema."""
        versions = sorted({f.version if f.version is not None else target for f in self.files})
        infos = []
        for version in versions:
            info = MigrationsInfo(version=version)
            for f in self.files:
                if not self._is_relevant(f, version, target):
                    continue
                if f.type == "idempotent":
                    info.idempotents.append(f)
                elif f.type == "pre":
                    info.pre_migrations.append(f)
                elif f.type == "post":
                    info.post_migrations.append(f)
                else:
                    info.snapshots.append(f)
            infos.append(info)
        return infos

    def info_for(self, target: Decimal) -> MigrationsInfo | None:
        return next((i for i in self.migrations_info(target) if i.version == target), None)

    def migrations_between(self, current: Decimal, target: Decimal) -> list[MigrationsInfo]:
        return [i for i in self.migrations_info(target) if current < i.version <= target]
