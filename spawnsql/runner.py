"""
spawnsql Migration Engine - applies rendered migrations and keeps the ledger.

Every (migration, namespace) pair moves through::

    Unknown ──apply──▶ Attempted ──▶ Success
                           │
                           └───────▶ Failure

Features:
- Namespace-scoped advisory lock held for the whole apply
- ATTEMPTED row written before any SQL reaches the database
- Failure rows written from a fresh session
- ``adopt`` for migrations applied by hand
- ``apply_all`` in timestamp order, stopping at the first failure
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Callable, Iterable, List, Optional, Union

from .engine import (
    DEFAULT_NAMESPACE,
    Engine,
    EngineSession,
    ExistingMigrationInfo,
    LedgerEntry,
    MigrationActivity,
    MigrationStatus,
    advisory_lock_key,
)
from .faults import (
    AdvisoryLockFault,
    AlreadyAppliedFault,
    AppliedButNotRecordedFault,
    Fault,
    PreviousAttemptFailedFault,
)
from .store import content_hash

logger = logging.getLogger("spawnsql.runner")

ScriptSource = Union[str, Callable[[], str]]


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    ADOPTED = "adopted"

    def __str__(self) -> str:
        return self.value


@dataclass
class ApplyResult:
    """Result of one apply or adopt."""
    migration: str
    namespace: str
    outcome: ApplyOutcome
    info: Optional[ExistingMigrationInfo] = None
    checksum: Optional[str] = None
    execution_time: Optional[timedelta] = None


@dataclass
class PendingMigration:
    """A migration queued for ``apply_all``; ``script`` renders on demand."""
    name: str
    script: ScriptSource
    pin_hash: Optional[str] = None


@dataclass
class BatchResult:
    """
    Result of ``apply_all``.

    ``error`` is set when the batch stopped early; ``results`` holds what
    happened before that point.
    """
    results: List[ApplyResult] = field(default_factory=list)
    failed_migration: Optional[str] = None
    error: Optional[Fault] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def applied(self) -> List[str]:
        return [r.migration for r in self.results if r.outcome is ApplyOutcome.APPLIED]

    @property
    def skipped(self) -> List[str]:
        return [r.migration for r in self.results if r.outcome is ApplyOutcome.ALREADY_APPLIED]


class MigrationEngine:
    """
    Applies migrations against an :class:`Engine` and records them.

    Usage:
        runner = MigrationEngine(engine)
        result = await runner.apply("20240101000000-init", sql)
        await runner.adopt("20240102000000-manual", description="applied by hand")
        batch = await runner.apply_all(pending)
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._ledger_ready = False

    async def _ensure_ledger(self) -> None:
        if not self._ledger_ready:
            await self.engine.ensure_ledger()
            self._ledger_ready = True

    async def status(self, namespace: str = DEFAULT_NAMESPACE) -> List[ExistingMigrationInfo]:
        await self._ensure_ledger()
        return await self.engine.list_migrations(namespace)

    # ── Apply ────────────────────────────────────────────────────────

    def _check_applicable(
        self, info: Optional[ExistingMigrationInfo], *, retry: bool
    ) -> Optional[ApplyResult]:
        if info is None:
            return None
        if info.last_status is MigrationStatus.SUCCESS:
            return ApplyResult(
                migration=info.migration_name,
                namespace=info.namespace,
                outcome=ApplyOutcome.ALREADY_APPLIED,
                info=info,
            )
        if not retry:
            raise PreviousAttemptFailedFault(info.last_status, info)
        logger.warning(
            "Retrying %s in namespace %s (last status %s)",
            info.migration_name, info.namespace, info.last_status,
        )
        return None

    async def _lock(self, session: EngineSession, migration: str, namespace: str) -> int:
        key = advisory_lock_key(namespace)
        try:
            acquired = await session.try_lock(key)
        except Fault as exc:
            raise AdvisoryLockFault(migration, namespace, str(exc)) from exc
        if not acquired:
            raise AdvisoryLockFault(migration, namespace, "lock is held by another session")
        return key

    async def apply(
        self,
        migration: str,
        script: ScriptSource,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        pin_hash: Optional[str] = None,
        retry: bool = False,
    ) -> ApplyResult:
        """
        Apply one migration.

        *script* is the rendered SQL, or a callable producing it. Rendering
        completes before the lock is taken, so template faults never leave
        a trace in the ledger.

        Raises:
            PreviousAttemptFailedFault: Last attempt is ATTEMPTED or FAILURE
                and *retry* is false
            AdvisoryLockFault: Another session holds the namespace lock
            AppliedButNotRecordedFault: SQL ran but SUCCESS was not recorded
            ProcessFault: The SQL failed (a FAILURE row has been recorded)
        """
        await self._ensure_ledger()

        existing = self._check_applicable(
            await self.engine.migration_status(migration, namespace), retry=retry
        )
        if existing is not None:
            logger.info("%s already applied in namespace %s", migration, namespace)
            return existing

        sql = script() if callable(script) else script
        payload = sql.encode("utf-8")
        checksum = content_hash(payload)

        async with self.engine.session() as session:
            key = await self._lock(session, migration, namespace)

            # Another process may have applied it between the check and the lock
            existing = self._check_applicable(
                await self.engine.migration_status(migration, namespace), retry=retry
            )
            if existing is not None:
                await session.unlock(key)
                return existing

            await session.record(LedgerEntry(
                migration_name=migration,
                namespace=namespace,
                status=MigrationStatus.ATTEMPTED,
                activity=MigrationActivity.APPLY,
                checksum=checksum,
                pin_hash=pin_hash,
            ))

            started = time.monotonic()
            try:
                await session.stream([payload])
            except asyncio.CancelledError:
                logger.error(
                    "Apply of %s in namespace %s was cancelled; ledger left at ATTEMPTED",
                    migration, namespace,
                )
                raise
            except Fault as exc:
                elapsed = timedelta(seconds=time.monotonic() - started)
                logger.error("Migration %s failed: %s", migration, exc)
                await self._record_failure(migration, namespace, checksum, pin_hash, elapsed)
                raise

            elapsed = timedelta(seconds=time.monotonic() - started)
            try:
                await session.record(LedgerEntry(
                    migration_name=migration,
                    namespace=namespace,
                    status=MigrationStatus.SUCCESS,
                    activity=MigrationActivity.APPLY,
                    checksum=checksum,
                    pin_hash=pin_hash,
                    execution_time=elapsed,
                ))
            except Fault as exc:
                raise AppliedButNotRecordedFault(migration, namespace, str(exc)) from exc

            await session.unlock(key)

        logger.info("Applied %s in namespace %s (%.3fs)", migration, namespace, elapsed.total_seconds())
        return ApplyResult(
            migration=migration,
            namespace=namespace,
            outcome=ApplyOutcome.APPLIED,
            checksum=checksum,
            execution_time=elapsed,
        )

    async def _record_failure(
        self,
        migration: str,
        namespace: str,
        checksum: str,
        pin_hash: Optional[str],
        elapsed: timedelta,
    ) -> None:
        # The failed session may be gone; record from a fresh one
        try:
            async with self.engine.session() as session:
                await session.record(LedgerEntry(
                    migration_name=migration,
                    namespace=namespace,
                    status=MigrationStatus.FAILURE,
                    activity=MigrationActivity.APPLY,
                    checksum=checksum,
                    pin_hash=pin_hash,
                    execution_time=elapsed,
                ))
        except Fault as exc:
            logger.error(
                "Could not record FAILURE for %s in namespace %s: %s",
                migration, namespace, exc,
            )

    # ── Adopt ────────────────────────────────────────────────────────

    async def adopt(
        self,
        migration: str,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        description: str = "",
        pin_hash: Optional[str] = None,
    ) -> ApplyResult:
        """
        Mark a migration as applied without running any SQL.

        Raises:
            AlreadyAppliedFault: The ledger already records SUCCESS
            AdvisoryLockFault: Another session holds the namespace lock
        """
        await self._ensure_ledger()

        async with self.engine.session() as session:
            key = await self._lock(session, migration, namespace)
            info = await self.engine.migration_status(migration, namespace)
            if info is not None and info.last_status is MigrationStatus.SUCCESS:
                await session.unlock(key)
                raise AlreadyAppliedFault(info)

            await session.record(LedgerEntry(
                migration_name=migration,
                namespace=namespace,
                status=MigrationStatus.SUCCESS,
                activity=MigrationActivity.ADOPT,
                pin_hash=pin_hash,
                description=description,
            ))
            await session.unlock(key)

        logger.info("Adopted %s in namespace %s", migration, namespace)
        return ApplyResult(
            migration=migration,
            namespace=namespace,
            outcome=ApplyOutcome.ADOPTED,
            info=info,
        )

    # ── Batch ────────────────────────────────────────────────────────

    async def apply_all(
        self,
        migrations: Iterable[PendingMigration],
        *,
        namespace: str = DEFAULT_NAMESPACE,
        retry: bool = False,
    ) -> BatchResult:
        """
        Apply *migrations* in name order, skipping those already applied.

        Stops at the first fault. Earlier migrations stay applied.
        """
        batch = BatchResult()
        for pending in sorted(migrations, key=lambda m: m.name):
            try:
                result = await self.apply(
                    pending.name,
                    pending.script,
                    namespace=namespace,
                    pin_hash=pending.pin_hash,
                    retry=retry,
                )
            except Fault as exc:
                logger.error("Stopping batch at %s: %s", pending.name, exc)
                batch.failed_migration = pending.name
                batch.error = exc
                break
            batch.results.append(result)
        return batch
