"""
Migration folders on disk.

Layout under the spawn folder::

    components/                       live component templates
    migrations/<timestamp>-<name>/
        up.sql                        migration script (a template)
        lock.toml                     pinned root hash, after ``pin``
    pinned/                           content-addressed snapshot store
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from .config import SpawnConfig
from .faults import LockFileMissingFault, MigrationExistsFault, MigrationNotFoundFault
from .runner import PendingMigration
from .store import LOCK_FILE_NAME, HashStore, LockData, SnapshotEngine
from .templates import (
    ComponentSource,
    LiveComponentSource,
    PinnedComponentSource,
    TemplateRenderer,
)

logger = logging.getLogger("spawnsql.migrator")

SCRIPT_FILE_NAME = "up.sql"
BASE_MIGRATION = "BEGIN;\n\nCOMMIT;\n"


class Migrator:
    """
    File operations for the migrations of one project.

    Usage:
        migrator = Migrator(config)
        name = migrator.create("add-users")
        migrator.pin(name)
        sql = migrator.build(name, pinned=True)
    """

    def __init__(self, config: SpawnConfig):
        self.config = config

    # ── Paths ────────────────────────────────────────────────────────

    def folder(self, migration: str) -> Path:
        return self.config.migration_folder(migration)

    def script_path(self, migration: str) -> Path:
        return self.folder(migration) / SCRIPT_FILE_NAME

    def lock_path(self, migration: str) -> Path:
        return self.folder(migration) / LOCK_FILE_NAME

    def store(self) -> HashStore:
        return HashStore(self.config.pinned_folder)

    def _require(self, migration: str) -> Path:
        script = self.script_path(migration)
        if not script.is_file():
            raise MigrationNotFoundFault(migration, str(script))
        return script

    # ── Operations ───────────────────────────────────────────────────

    def create(self, name: str, *, now: Optional[datetime] = None) -> str:
        """
        Create ``<YYYYMMDDHHMMSS>-<name>/up.sql`` and return the folder name.

        Raises:
            MigrationExistsFault: The folder already exists.
        """
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")
        migration = f"{stamp}-{name}"
        folder = self.folder(migration)
        if folder.exists():
            raise MigrationExistsFault(migration, str(folder))

        folder.mkdir(parents=True)
        self.script_path(migration).write_text(BASE_MIGRATION, encoding="utf-8")
        logger.info("Created migration %s", folder)
        return migration

    def list_migrations(self) -> List[str]:
        """Migration folder names in creation order."""
        root = self.config.migrations_folder
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir())

    def read_lock(self, migration: str) -> LockData:
        """
        Raises:
            LockFileMissingFault: The migration was never pinned.
            CorruptLockFault: The lock file is malformed.
        """
        path = self.lock_path(migration)
        try:
            return LockData.read(path)
        except FileNotFoundError as exc:
            raise LockFileMissingFault(migration, str(path)) from exc

    def pin(self, migration: str) -> str:
        """Snapshot the components folder and record the root in ``lock.toml``."""
        self._require(migration)
        root_hash = SnapshotEngine(self.store()).snapshot(self.config.components_folder)
        LockData(pin=root_hash).write(self.lock_path(migration))
        return root_hash

    def check(self) -> List[str]:
        """Migrations that have a script but no lock file."""
        return [
            name for name in self.list_migrations()
            if self.script_path(name).is_file() and not self.lock_path(name).is_file()
        ]

    # ── Rendering ────────────────────────────────────────────────────

    def source(self, migration: str, *, pinned: bool = False) -> ComponentSource:
        if pinned:
            lock = self.read_lock(migration)
            return PinnedComponentSource.from_pin(self.store(), lock.pin)
        return LiveComponentSource(self.config.components_folder)

    def renderer(self, migration: str, *, pinned: bool = False) -> TemplateRenderer:
        return TemplateRenderer(
            self.source(migration, pinned=pinned),
            environment=self.config.effective_environment(),
        )

    def build(self, migration: str, *, pinned: bool = False, variables: Any = None) -> str:
        """Render the migration script to SQL."""
        script = self._require(migration)
        if not pinned and self.lock_path(migration).is_file():
            logger.warning(
                "Migration %s is pinned but is being built from live components", migration
            )
        return self.renderer(migration, pinned=pinned).render(script, variables)

    def pending(self, migration: str, *, pinned: bool = False, variables: Any = None) -> PendingMigration:
        """A lazily rendered migration for ``MigrationEngine.apply_all``."""
        self._require(migration)
        pin_hash = self.read_lock(migration).pin if pinned else None
        return PendingMigration(
            name=migration,
            script=lambda: self.build(migration, pinned=pinned, variables=variables),
            pin_hash=pin_hash,
        )
