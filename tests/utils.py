import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from pathlib import Path
from typing import Callable

from pgsimple.config import to_version
from pgsimple.migrations.version_store import VersionRecord

# sql directory layout shared by the catalog and cli tests
FIXTURE = {
    "test_table.sql": "CREATE TABLE IF NOT EXISTS test_table (id int);",
    "test_table.v0.1.snap.sql": "snap0.1",
    "test_table.v0.2.pre.sql": "pre0.2",
    "test_table.v0.2.snap.sql": "snap0.2",
    "test_table.v0.3.pre.sql": "pre0.3",
    "test_table.v0.3.snap.sql": "snap0.3",
    "test_table.v0.4.post.sql": "post0.4",
    "test_table.v1.0.post.sql": "post1.0",
    "test_table.v1.0.pre.sql": "pre1.0",
    "test_table.v500.1.pre.sql": "pre500.1",
}


def write_sql_files(directory: Path, files: dict[str, str]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name, contents in files.items():
        path = directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(contents)
    return directory


# --- Keyset fakes ---


class FakeKeysetConnection:
    def __init__(self, db: "FakeKeysetDatabase"):
        self.db = db

    async def fetch(self, sql: str, *args):
        return await self.db.fetch(sql, *args)

    async def fetchval(self, sql: str, *args):
        return await self.db.fetchval(sql, *args)


class FakeKeysetDatabase:
    """Answers statements through ``respond`` and records all of them."""

    def __init__(self, respond: Callable[[str], list[dict]], count: int = 0):
        self.respond = respond
        self.count = count
        self.statements: list[str] = []
        self.transactions: list[str] = []

    @asynccontextmanager
    async def transact(self):
        self.transactions.append("BEGIN")
        try:
            yield FakeKeysetConnection(self)
        except BaseException:
            self.transactions.append("ROLLBACK")
            raise
        self.transactions.append("COMMIT")

    async def fetch(self, sql: str, *args):
        self.statements.append(sql)
        return self.respond(sql)

    async def fetchval(self, sql: str, *args):
        self.statements.append(sql)
        return self.count


# --- asyncpg-like pool ---


class FakePoolConnection:
    def __init__(self, pool: "FakePool"):
        self.pool = pool
        self.listeners: dict[str, Callable] = {}

    async def execute(self, sql: str, *args):
        self.pool.statements.append(sql)
        if self.pool.error is not None:
            raise self.pool.error
        return "OK"

    async def fetch(self, sql: str, *args):
        self.pool.statements.append(sql)
        return self.pool.respond(sql)

    async def fetchval(self, sql: str, *args):
        rows = await self.fetch(sql, *args)
        return next(iter(rows[0].values())) if rows else None

    @asynccontextmanager
    async def transaction(self):
        yield

    async def add_listener(self, channel: str, callback: Callable):
        if self.pool.error is not None:
            raise self.pool.error
        self.listeners[channel] = callback

    async def remove_listener(self, channel: str, callback: Callable):
        assert self.listeners.pop(channel) == callback


class FakeAcquire:
    """``pool.acquire()`` is both awaitable and an async context manager."""

    def __init__(self, pool: "FakePool"):
        self.pool = pool
        self.conn: FakePoolConnection | None = None

    def __await__(self):
        return self.pool._take().__await__()

    async def __aenter__(self) -> FakePoolConnection:
        self.conn = await self.pool._take()
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        await self.pool.release(self.conn)


class FakePool:
    """Stands in for ``asyncpg.Pool`` with at most ``size`` connections out at once."""

    def __init__(
        self,
        respond: Callable[[str], list[dict]] = lambda sql: [],
        size: int = 1,
        error: Exception | None = None,
    ):
        self.respond = respond
        self.error = error
        self.statements: list[str] = []
        self.in_use: list[FakePoolConnection] = []
        self._slots = asyncio.Semaphore(size)

    async def _take(self) -> FakePoolConnection:
        await self._slots.acquire()
        conn = FakePoolConnection(self)
        self.in_use.append(conn)
        return conn

    def acquire(self) -> FakeAcquire:
        return FakeAcquire(self)

    async def release(self, conn: FakePoolConnection):
        self.in_use.remove(conn)
        self._slots.release()

    async def execute(self, sql: str, *args):
        async with self.acquire() as conn:
            return await conn.execute(sql, *args)

    async def fetch(self, sql: str, *args):
        async with self.acquire() as conn:
            return await conn.fetch(sql, *args)

    async def fetchval(self, sql: str, *args):
        async with self.acquire() as conn:
            return await conn.fetchval(sql, *args)


# --- Migration fakes ---


class FakeServer:
    """In-memory stand-in for the database shared by several coordinators."""

    def __init__(self, script_delay: float = 0.0):
        self.applied: list[str] = []
        self.versions: list[dict] = []
        self.listeners: dict[str, list[asyncio.Queue]] = {}
        self.notifications: list[tuple[str, str]] = []
        self.script_delay = script_delay
        self._deploy_seq = 0

    async def run_script(self, contents: str):
        await asyncio.sleep(self.script_delay)
        if "FAIL" in contents:
            raise Exception('syntax error at or near "FAIL"')
        if "EXISTS_ALREADY" in contents:
            raise Exception('relation "test_table" already exists')
        self.applied.append(contents)

    def deliver(self, channel: str, payload: str):
        self.notifications.append((channel, payload))
        for queue in self.listeners.get(channel, []):
            queue.put_nowait(payload)

    def next_deploy_seq(self) -> int:
        self._deploy_seq += 1
        return self._deploy_seq


class FakeTransaction:
    def __init__(self, server: FakeServer):
        self.server = server
        self.applied: list[str] = []
        self.pending: list[Callable[[], None]] = []

    async def execute(self, sql: str, *args):
        await self.server.run_script(sql)
        # the script is recorded by run_script; keep track so rollback can undo it
        self.applied.append(sql)


class FakeSubscription:
    def __init__(self, server: FakeServer, channel: str):
        self.server = server
        self.channel = channel
        self.queue: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self):
        self.server.listeners.setdefault(self.channel, []).append(self.queue)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.server.listeners[self.channel].remove(self.queue)

    async def wait(self, timeout=None):
        return await asyncio.wait_for(self.queue.get(), timeout)


class FakeMigrationDatabase:
    def __init__(self, server: FakeServer):
        self.server = server
        self.transactions: list[str] = []

    async def execute(self, sql: str, *args):
        await self.server.run_script(sql)

    @asynccontextmanager
    async def transact(self):
        tx = FakeTransaction(self.server)
        try:
            yield tx
        except BaseException:
            for sql in tx.applied:
                self.server.applied.remove(sql)
            self.transactions.append("ROLLBACK")
            raise
        for action in tx.pending:
            action()
        self.transactions.append("COMMIT")

    def listen(self, channel: str):
        return FakeSubscription(self.server, channel)

    async def notify(self, conn, channel: str, payload: str):
        # delivered when the transaction commits, like NOTIFY
        conn.pending.append(lambda: self.server.deliver(channel, payload))


class FakeVersionStore:
    def __init__(self, server: FakeServer):
        self.server = server

    async def get_version(self):
        deployed = [v for v in self.server.versions if v["deployed"] is not None]
        if deployed:
            return max(deployed, key=lambda v: v["deployed"])["version"]
        if self.server.versions:
            return self.server.versions[0]["version"]
        return None

    async def in_progress(self):
        return [
            VersionRecord(version=v["version"], deploy_start=None)
            for v in self.server.versions
            if v["deployed"] is None
        ]

    async def claim(self, version: Decimal) -> bool:
        await asyncio.sleep(0)
        if any(v["version"] == version for v in self.server.versions):
            return False
        self.server.versions.append({"version": version, "deployed": None})
        return True

    async def finish(self, conn, version: Decimal):
        for v in self.server.versions:
            if v["version"] == version:
                v["deployed"] = self.server.next_deploy_seq()

    async def abandon(self, conn, version: Decimal):
        self.server.versions = [v for v in self.server.versions if v["version"] != version]

    def deploy(self, version):
        """Pretend ``version`` was deployed earlier."""
        self.server.versions.append(
            {"version": to_version(version), "deployed": self.server.next_deploy_seq()}
        )
