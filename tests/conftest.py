"""
Shared test fixtures and helpers for the spawnsql test suite.
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from spawnsql.config import DatabaseConfig, SpawnConfig
from spawnsql.engine import (
    DEFAULT_NAMESPACE,
    Engine,
    EngineSession,
    ExistingMigrationInfo,
    LedgerEntry,
    MigrationStatus,
)
from spawnsql.faults import ProcessFault


# ============================================================================
# In-memory engine
# ============================================================================


class InMemorySession(EngineSession):
    def __init__(self, engine: "InMemoryEngine"):
        self.engine = engine
        self.locks: List[int] = []
        self.closed = False

    async def try_lock(self, key: int) -> bool:
        if self.engine.fail_lock:
            raise ProcessFault(2, "connection refused")
        holder = self.engine.lock_holders.get(key)
        if holder is not None and holder is not self:
            return False
        self.engine.lock_holders[key] = self
        self.locks.append(key)
        return True

    async def unlock(self, key: int) -> None:
        if self.engine.lock_holders.get(key) is self:
            del self.engine.lock_holders[key]
        if key in self.locks:
            self.locks.remove(key)

    async def record(self, entry: LedgerEntry) -> None:
        if entry.status in self.engine.fail_record:
            raise ProcessFault(1, f"could not record {entry.status}")
        self.engine.history.append(entry)

    async def stream(self, chunks: Iterable[bytes]) -> None:
        payload = b"".join(chunks)
        if self.engine.stream_hook is not None:
            await self.engine.stream_hook(payload)
        if self.engine.fail_stream:
            raise ProcessFault(3, "ERROR:  relation \"users\" already exists")
        self.engine.executed.append(payload.decode("utf-8"))

    async def close(self) -> None:
        # Closing a session releases its advisory locks
        for key in list(self.locks):
            await self.unlock(key)
        self.closed = True


class InMemoryEngine(Engine):
    """Ledger kept in lists; knobs make individual steps fail."""

    name = "memory"

    def __init__(self):
        self.history: List[LedgerEntry] = []
        self.executed: List[str] = []
        self.lock_holders: Dict[int, InMemorySession] = {}
        self.sessions: List[InMemorySession] = []
        self.ledger_calls = 0
        self.fail_lock = False
        self.fail_stream = False
        self.fail_record: Tuple[MigrationStatus, ...] = ()
        self.stream_hook = None
        self.script_output = b""

    async def ensure_ledger(self) -> None:
        self.ledger_calls += 1

    def _latest(self, name: str, namespace: str) -> Optional[LedgerEntry]:
        for entry in reversed(self.history):
            if entry.migration_name == name and entry.namespace == namespace:
                return entry
        return None

    async def migration_status(self, migration_name: str, namespace: str = DEFAULT_NAMESPACE):
        entry = self._latest(migration_name, namespace)
        if entry is None:
            return None
        return ExistingMigrationInfo(
            migration_name=entry.migration_name,
            namespace=entry.namespace,
            last_status=entry.status,
            last_activity=entry.activity,
            checksum=entry.checksum or "",
        )

    async def list_migrations(self, namespace: str = DEFAULT_NAMESPACE) -> List[ExistingMigrationInfo]:
        names = sorted({e.migration_name for e in self.history if e.namespace == namespace})
        return [await self.migration_status(name, namespace) for name in names]

    @asynccontextmanager
    async def session(self):
        session = InMemorySession(self)
        self.sessions.append(session)
        try:
            yield session
        finally:
            await session.close()

    async def execute(self, chunks: Iterable[bytes]) -> bytes:
        payload = b"".join(chunks)
        if self.fail_stream:
            raise ProcessFault(3, "ERROR:  syntax error")
        self.executed.append(payload.decode("utf-8"))
        return self.script_output or payload

    def statuses(self, name: str) -> List[MigrationStatus]:
        return [e.status for e in self.history if e.migration_name == name]


@pytest.fixture
def engine() -> InMemoryEngine:
    return InMemoryEngine()


# ============================================================================
# Project layout
# ============================================================================


@pytest.fixture
def project(tmp_path: Path) -> SpawnConfig:
    """A spawn project rooted at tmp_path with one configured database."""
    config = SpawnConfig(
        spawn_folder="spawn",
        databases={"main": DatabaseConfig(command=[sys.executable, "-c", "pass"])},
        telemetry=False,
        base_dir=tmp_path,
    )
    config.components_folder.mkdir(parents=True)
    config.migrations_folder.mkdir(parents=True)
    return config


@pytest.fixture
def write():
    """Write a text file, creating parent folders."""

    def _write(path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
