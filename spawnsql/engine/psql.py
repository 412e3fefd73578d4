"""
PostgreSQL engine driven through a ``psql`` subprocess.

Each session is one ``psql`` process reading commands from its stdin. After
every batch the session writes ``\\echo <marker>`` and reads stdout up to the
marker, which gives request/response round trips over a plain pipe.
``ON_ERROR_STOP`` makes psql exit on the first SQL error; an early exit
becomes a :class:`ProcessFault` carrying the exit code and stderr.

Ledger layout (schema ``spawn_schema``, default ``_spawn``):

    migration          (migration_id, name, namespace)
    migration_history  (one row per attempt: status, activity, checksum, ...)
    activity / status  (lookup tables)
"""

from __future__ import annotations

import asyncio
import csv
import getpass
import io
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from importlib import resources
from typing import TYPE_CHECKING, AsyncIterator, Iterable, List, Optional

from ..faults import EngineUnavailableFault, ProcessFault
from ..sql import (
    EscapedIdentifier,
    EscapedLiteral,
    EscapedQuery,
    InsecureRawSql,
    sql_query,
)
from ..store import content_hash
from ..templates import LiveComponentSource, TemplateRenderer
from .base import (
    DEFAULT_NAMESPACE,
    Engine,
    EngineSession,
    ExistingMigrationInfo,
    LedgerEntry,
    MigrationActivity,
    MigrationStatus,
    advisory_lock_key,
)

if TYPE_CHECKING:
    from ..config import DatabaseConfig

logger = logging.getLogger("spawnsql.engine.psql")

PSQL_PREAMBLE = b"\\set QUIET on\n\\pset pager off\n\\set ON_ERROR_STOP on\n"
QUERY_MODE = b"\\pset tuples_only on\n\\pset format csv\n"
TEXT_MODE = b"\\pset tuples_only off\n\\pset format aligned\n"

INTERNAL_NAMESPACE = "spawn"
ENGINE_MIGRATIONS_PACKAGE = "spawnsql.engine"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _interval(duration: Optional[timedelta]) -> InsecureRawSql:
    seconds = duration.total_seconds() if duration is not None else 0.0
    return InsecureRawSql(f"INTERVAL '{seconds:.6f} second'")


class PsqlSession(EngineSession):
    """One running ``psql`` process."""

    def __init__(self, process: asyncio.subprocess.Process, command: List[str]):
        self._process = process
        self._command = " ".join(command)
        self._stdout: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._stderr = bytearray()
        self._readers = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        ]

    @property
    def alive(self) -> bool:
        return self._process.returncode is None

    # ── Pipes ────────────────────────────────────────────────────────

    async def _read_stdout(self) -> None:
        while True:
            line = await self._process.stdout.readline()
            if not line:
                await self._stdout.put(None)
                return
            await self._stdout.put(line.decode("utf-8", errors="replace").rstrip("\r\n"))

    async def _read_stderr(self) -> None:
        while True:
            chunk = await self._process.stderr.read(4096)
            if not chunk:
                return
            self._stderr.extend(chunk)

    async def _write(self, data: bytes) -> None:
        try:
            self._process.stdin.write(data)
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise await self._failure() from exc

    async def _failure(self) -> ProcessFault:
        code = await self._process.wait()
        await asyncio.gather(*self._readers, return_exceptions=True)
        stderr = self._stderr.decode("utf-8", errors="replace")
        logger.debug("psql exited with %s: %s", code, stderr.strip())
        return ProcessFault(code, stderr, command=self._command)

    async def _sync(self) -> List[str]:
        """Wait until psql has processed everything written so far."""
        marker = f"__spawnsql_sync_{uuid.uuid4().hex}__"
        await self._write(f"\\echo {marker}\n".encode())
        lines: List[str] = []
        while True:
            line = await self._stdout.get()
            if line is None:
                raise await self._failure()
            if line == marker:
                return lines
            lines.append(line)

    # ── Commands ─────────────────────────────────────────────────────

    async def query(self, query: EscapedQuery) -> List[List[str]]:
        """Run a query and return its rows as CSV fields."""
        await self._write(QUERY_MODE + query.as_sql().encode("utf-8") + b"\n")
        lines = await self._sync()
        await self._write(TEXT_MODE)
        return [row for row in csv.reader(io.StringIO("\n".join(lines))) if row]

    async def execute_sql(self, query: EscapedQuery) -> List[str]:
        await self._write(query.as_sql().encode("utf-8") + b"\n")
        return await self._sync()

    async def try_lock(self, key: int) -> bool:
        rows = await self.query(
            sql_query("SELECT pg_try_advisory_lock({});", InsecureRawSql(str(int(key))))
        )
        return bool(rows) and rows[0][0] == "t"

    async def lock(self, key: int) -> None:
        """Wait for the session-level advisory lock on *key*."""
        await self.query(sql_query("SELECT pg_advisory_lock({});", InsecureRawSql(str(int(key)))))

    async def unlock(self, key: int) -> None:
        await self.query(sql_query("SELECT pg_advisory_unlock({});", InsecureRawSql(str(int(key)))))

    async def record(self, entry: LedgerEntry, *, schema: EscapedIdentifier) -> None:
        await self.execute_sql(record_query(schema, entry))

    async def stream(self, chunks: Iterable[bytes]) -> None:
        for chunk in chunks:
            await self._write(chunk)
        # Terminate a trailing statement that lacks a semicolon
        await self._write(b"\n;\n")
        await self._sync()

    async def close(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.stdin.close()
                await self._process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning("psql did not exit after stdin closed; killing it")
                self._process.kill()
                await self._process.wait()
        await asyncio.gather(*self._readers, return_exceptions=True)


class _LedgerSession(EngineSession):
    """Binds a :class:`PsqlSession` to the engine's ledger schema."""

    def __init__(self, session: PsqlSession, schema: EscapedIdentifier):
        self._session = session
        self._schema = schema

    async def try_lock(self, key: int) -> bool:
        return await self._session.try_lock(key)

    async def unlock(self, key: int) -> None:
        await self._session.unlock(key)

    async def record(self, entry: LedgerEntry) -> None:
        await self._session.record(entry, schema=self._schema)

    async def stream(self, chunks: Iterable[bytes]) -> None:
        await self._session.stream(chunks)

    async def close(self) -> None:
        await self._session.close()


def record_query(schema: EscapedIdentifier, entry: LedgerEntry) -> EscapedQuery:
    """Append one history row, creating the migration row on first use."""
    return sql_query(
        """
WITH upserted AS (
    INSERT INTO {}.migration (name, namespace) VALUES ({}, {})
    ON CONFLICT (name, namespace) DO UPDATE SET name = EXCLUDED.name
    RETURNING migration_id
)
INSERT INTO {}.migration_history (
    migration_id_migration,
    activity_id_activity,
    created_by,
    description,
    status_note,
    status_id_status,
    checksum,
    execution_time,
    pin_hash
)
SELECT
    migration_id, {}, {}, {}, '', {}, decode({}, 'hex'), {}, {}
FROM upserted;
""",
        schema,
        EscapedLiteral(entry.migration_name),
        EscapedLiteral(entry.namespace),
        schema,
        EscapedLiteral(entry.activity.value),
        EscapedLiteral(_current_user()),
        EscapedLiteral(entry.description),
        EscapedLiteral(entry.status.value),
        EscapedLiteral(entry.checksum or ""),
        _interval(entry.execution_time),
        EscapedLiteral.optional(entry.pin_hash),
    )


class PsqlEngine(Engine):
    """
    Ledger-aware PostgreSQL engine.

    Args:
        command: argv that starts psql connected to the target database,
            e.g. ``["psql", "-U", "postgres", "mydb"]``
        spawn_schema: Schema holding the ledger tables
    """

    name = "postgres-psql"

    def __init__(self, command: List[str], *, spawn_schema: str = "_spawn"):
        if not command:
            raise EngineUnavailableFault(self.name, "no psql command configured")
        self.command = list(command)
        self.spawn_schema = spawn_schema
        self.schema_ident = EscapedIdentifier(spawn_schema)
        self.schema_literal = EscapedLiteral(spawn_schema)

    @classmethod
    def from_config(cls, database: "DatabaseConfig") -> "PsqlEngine":
        return cls(database.command, spawn_schema=database.spawn_schema)

    # ── Sessions ─────────────────────────────────────────────────────

    async def _spawn(self) -> PsqlSession:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EngineUnavailableFault(self.name, f"could not start {self.command[0]!r}: {exc}") from exc

        session = PsqlSession(process, self.command)
        await session._write(PSQL_PREAMBLE)
        return session

    @asynccontextmanager
    async def raw_session(self) -> AsyncIterator[PsqlSession]:
        session = await self._spawn()
        try:
            yield session
        finally:
            await session.close()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[EngineSession]:
        async with self.raw_session() as session:
            yield _LedgerSession(session, self.schema_ident)

    async def execute(self, chunks: Iterable[bytes]) -> bytes:
        """
        Run a script in a fresh psql process and return its stdout.

        Raises:
            ProcessFault: If psql exits non-zero.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EngineUnavailableFault(self.name, f"could not start {self.command[0]!r}: {exc}") from exc

        async def feed() -> None:
            try:
                process.stdin.write(PSQL_PREAMBLE)
                for chunk in chunks:
                    process.stdin.write(chunk)
                    await process.stdin.drain()
                process.stdin.close()
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                # psql exited early; its exit code and stderr tell why
                pass

        _, stdout, stderr = await asyncio.gather(
            feed(), process.stdout.read(), process.stderr.read()
        )
        code = await process.wait()
        if code != 0:
            raise ProcessFault(code, stderr.decode("utf-8", errors="replace"), command=" ".join(self.command))
        return stdout

    # ── Ledger ───────────────────────────────────────────────────────

    async def _ledger_exists(self, session: PsqlSession) -> bool:
        rows = await session.query(sql_query(
            """
SELECT EXISTS (
    SELECT FROM information_schema.tables
    WHERE table_schema = {} AND table_name = 'migration_history'
);""",
            self.schema_literal,
        ))
        return bool(rows) and rows[0][0] == "t"

    async def _status(
        self, session: PsqlSession, migration_name: str, namespace: str
    ) -> Optional[ExistingMigrationInfo]:
        rows = await session.query(sql_query(
            """
SELECT m.name, m.namespace, mh.status_id_status, mh.activity_id_activity, encode(mh.checksum, 'hex')
FROM {}.migration_history mh
JOIN {}.migration m ON m.migration_id = mh.migration_id_migration
WHERE m.name = {} AND m.namespace = {}
ORDER BY mh.migration_history_id DESC
LIMIT 1;""",
            self.schema_ident,
            self.schema_ident,
            EscapedLiteral(migration_name),
            EscapedLiteral(namespace),
        ))
        if not rows:
            return None
        return _info_from_row(rows[0])

    async def migration_status(
        self, migration_name: str, namespace: str = DEFAULT_NAMESPACE
    ) -> Optional[ExistingMigrationInfo]:
        async with self.raw_session() as session:
            if not await self._ledger_exists(session):
                return None
            return await self._status(session, migration_name, namespace)

    async def list_migrations(self, namespace: str = DEFAULT_NAMESPACE) -> List[ExistingMigrationInfo]:
        async with self.raw_session() as session:
            if not await self._ledger_exists(session):
                return []
            rows = await session.query(sql_query(
                """
SELECT DISTINCT ON (m.migration_id)
    m.name, m.namespace, mh.status_id_status, mh.activity_id_activity, encode(mh.checksum, 'hex')
FROM {}.migration_history mh
JOIN {}.migration m ON m.migration_id = mh.migration_id_migration
WHERE m.namespace = {}
ORDER BY m.migration_id, mh.migration_history_id DESC;""",
                self.schema_ident,
                self.schema_ident,
                EscapedLiteral(namespace),
            ))
        return sorted((_info_from_row(row) for row in rows), key=lambda i: i.migration_name)

    async def ensure_ledger(self) -> None:
        """
        Apply the bundled engine migrations under the ``spawn`` namespace.

        The first migration creates the ledger itself, so it is recorded
        only after it has run. Concurrent callers wait on the internal
        advisory lock; once it is free they find the work already done.
        """
        root = resources.files(ENGINE_MIGRATIONS_PACKAGE) / "migrations"
        renderer = TemplateRenderer(LiveComponentSource(str(root)))
        key = advisory_lock_key(INTERNAL_NAMESPACE)

        async with self.raw_session() as session:
            await session.lock(key)
            try:
                names = sorted(p.name for p in root.iterdir() if p.is_dir())
                for name in names:
                    if await self._ledger_exists(session):
                        info = await self._status(session, name, INTERNAL_NAMESPACE)
                        if info is not None and info.last_status is MigrationStatus.SUCCESS:
                            continue

                    script = root / name / "up.sql"
                    sql = renderer.render_string(
                        script.read_text(encoding="utf-8"),
                        {"schema": self.spawn_schema},
                        name=f"engine:{name}",
                    )
                    started = time.monotonic()
                    await session.stream([sql.encode("utf-8")])
                    await session.record(
                        LedgerEntry(
                            migration_name=name,
                            namespace=INTERNAL_NAMESPACE,
                            status=MigrationStatus.SUCCESS,
                            activity=MigrationActivity.APPLY,
                            checksum=content_hash(sql.encode("utf-8")),
                            execution_time=timedelta(seconds=time.monotonic() - started),
                        ),
                        schema=self.schema_ident,
                    )
                    logger.info("Applied engine migration %s", name)
            finally:
                if session.alive:
                    await session.unlock(key)


def _info_from_row(row: List[str]) -> ExistingMigrationInfo:
    name, namespace, status, activity = row[0], row[1], row[2], row[3]
    checksum = row[4] if len(row) > 4 else ""
    return ExistingMigrationInfo(
        migration_name=name,
        namespace=namespace,
        last_status=MigrationStatus(status),
        last_activity=MigrationActivity(activity),
        checksum=checksum,
    )
