"""
Engine interfaces and ledger types.

An ``Engine`` hosts the migration ledger and executes SQL. The migration
state machine (``spawnsql.runner``) only talks to these interfaces, so the
PostgreSQL ``psql`` engine and the in-memory engine used in tests are
interchangeable.
"""

from __future__ import annotations

import hashlib
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Iterable, List, Optional


DEFAULT_NAMESPACE = "default"


def advisory_lock_key(namespace: str) -> int:
    """Signed 64-bit advisory lock key for *namespace*."""
    digest = hashlib.blake2b(f"spawnsql:{namespace}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class MigrationStatus(str, Enum):
    """Ledger status of the latest history row."""

    SUCCESS = "SUCCESS"
    ATTEMPTED = "ATTEMPTED"
    FAILURE = "FAILURE"

    def __str__(self) -> str:
        return self.value


class MigrationActivity(str, Enum):
    """What produced a history row."""

    APPLY = "APPLY"
    ADOPT = "ADOPT"
    REVERT = "REVERT"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ExistingMigrationInfo:
    """Latest ledger state of one (migration, namespace) pair."""

    migration_name: str
    namespace: str
    last_status: MigrationStatus
    last_activity: MigrationActivity
    checksum: str = ""


@dataclass(frozen=True)
class LedgerEntry:
    """One history row to append."""

    migration_name: str
    namespace: str
    status: MigrationStatus
    activity: MigrationActivity
    checksum: Optional[str] = None
    pin_hash: Optional[str] = None
    description: str = ""
    execution_time: Optional[timedelta] = None


class EngineSession:
    """
    One connection to the database.

    Advisory locks are scoped to the session: closing it releases them.
    """

    async def try_lock(self, key: int) -> bool:
        raise NotImplementedError

    async def unlock(self, key: int) -> None:
        raise NotImplementedError

    async def record(self, entry: LedgerEntry) -> None:
        raise NotImplementedError

    async def stream(self, chunks: Iterable[bytes]) -> None:
        """Send a complete SQL script; raise ``ProcessFault`` on failure."""
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class Engine:
    """Minimal interface every engine implements."""

    name: str = "engine"

    async def ensure_ledger(self) -> None:
        """Create or upgrade the ledger tables."""
        raise NotImplementedError

    async def migration_status(
        self, migration_name: str, namespace: str = DEFAULT_NAMESPACE
    ) -> Optional[ExistingMigrationInfo]:
        raise NotImplementedError

    async def list_migrations(self, namespace: str = DEFAULT_NAMESPACE) -> List[ExistingMigrationInfo]:
        raise NotImplementedError

    def session(self) -> AbstractAsyncContextManager[EngineSession]:
        raise NotImplementedError

    async def execute(self, chunks: Iterable[bytes]) -> bytes:
        """Run a whole script outside the ledger and return its output."""
        raise NotImplementedError
