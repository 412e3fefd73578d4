"""
Database engines.

``create_engine`` maps a ``DatabaseConfig.engine`` name to its
implementation. Only ``postgres-psql`` ships today.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict

from ..faults import EngineUnavailableFault
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
from .psql import INTERNAL_NAMESPACE, PsqlEngine, PsqlSession

if TYPE_CHECKING:
    from ..config import DatabaseConfig

ENGINES: Dict[str, Callable[["DatabaseConfig"], Engine]] = {
    PsqlEngine.name: PsqlEngine.from_config,
}


def create_engine(database: "DatabaseConfig") -> Engine:
    """
    Build the engine configured for *database*.

    Raises:
        EngineUnavailableFault: Unknown engine name or empty command.
    """
    factory = ENGINES.get(database.engine)
    if factory is None:
        known = ", ".join(sorted(ENGINES))
        raise EngineUnavailableFault(database.engine, f"unknown engine (known: {known})")
    return factory(database)


__all__ = [
    "DEFAULT_NAMESPACE",
    "INTERNAL_NAMESPACE",
    "Engine",
    "EngineSession",
    "ExistingMigrationInfo",
    "LedgerEntry",
    "MigrationActivity",
    "MigrationStatus",
    "PsqlEngine",
    "PsqlSession",
    "advisory_lock_key",
    "create_engine",
]
