"""
Migration commands: new, pin, build, apply, adopt, status, check.
"""

from typing import Callable, Dict, List, Optional

import click

from ...config import SpawnConfig
from ...engine import DEFAULT_NAMESPACE, Engine, MigrationActivity, MigrationStatus, create_engine
from ...faults import LockFileMissingFault
from ...migrator import Migrator
from ...runner import ApplyOutcome, MigrationEngine
from ...variables import load_variables
from ..utils.colors import (
    success, warning, info, dim, kv, table, bullet,
    _CHECK, _CROSS, _CIRCLE,
)
from ..utils.workspace import run_command

EngineFactory = Callable[..., Engine]


def _engine(config: SpawnConfig, engine_factory: Optional[EngineFactory]) -> Engine:
    factory = engine_factory or create_engine
    return factory(config.target_database())


def cmd_new(config: SpawnConfig, name: str, *, quiet: bool = False) -> str:
    migration = run_command(config, "migration new", _async(lambda: Migrator(config).create(name)))
    if not quiet:
        success(f"  {_CHECK} Created migration '{migration}'")
        kv("Script", str(Migrator(config).script_path(migration)))
    return migration


def cmd_pin(config: SpawnConfig, migration: str, *, quiet: bool = False) -> str:
    root_hash = run_command(config, "migration pin", _async(lambda: Migrator(config).pin(migration)))
    if not quiet:
        success(f"  {_CHECK} Pinned '{migration}'")
        kv("Root hash", root_hash)
    return root_hash


def cmd_build(
    config: SpawnConfig,
    migration: str,
    *,
    pinned: bool = False,
    variables_path: Optional[str] = None,
) -> str:
    def build() -> str:
        variables = load_variables(variables_path) if variables_path else None
        return Migrator(config).build(migration, pinned=pinned, variables=variables)

    sql = run_command(
        config,
        "migration build",
        _async(build),
        {"opt_pinned": pinned, "has_variables": variables_path is not None},
    )
    click.echo(sql, nl=False)
    return sql


async def _pending(migrator: Migrator, engine: Engine) -> List[str]:
    """Filesystem migrations the ledger does not record as successful."""
    runner = MigrationEngine(engine)
    recorded = {
        entry.migration_name: entry
        for entry in await runner.status(DEFAULT_NAMESPACE)
    }
    return [
        name for name in migrator.list_migrations()
        if name not in recorded or recorded[name].last_status is not MigrationStatus.SUCCESS
    ]


def _confirm(action: str, migrations: List[str], yes: bool) -> bool:
    if not migrations:
        info(f"  No migrations to {action}")
        return False
    info(f"  Migrations to {action}:")
    for name in migrations:
        bullet(name)
    if yes:
        return True
    return click.confirm(f"  {action.capitalize()} {len(migrations)} migration(s)?", default=False)


def cmd_apply(
    config: SpawnConfig,
    migration: Optional[str] = None,
    *,
    pinned: bool = False,
    retry: bool = False,
    yes: bool = False,
    variables_path: Optional[str] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> List[str]:
    """Apply one migration, or every pending migration after confirmation."""
    migrator = Migrator(config)
    variables = load_variables(variables_path) if variables_path else None

    async def apply() -> List[str]:
        engine = _engine(config, engine_factory)
        runner = MigrationEngine(engine)

        names = [migration] if migration else await _pending(migrator, engine)
        if migration is None and not _confirm("apply", names, yes):
            return []

        try:
            pending = [migrator.pending(name, pinned=pinned, variables=variables) for name in names]
        except LockFileMissingFault as exc:
            warning(f"  Is it pinned? Run 'spawn migration pin {exc.metadata['migration']}'")
            raise

        batch = await runner.apply_all(pending, retry=retry)
        for result in batch.results:
            if result.outcome is ApplyOutcome.ALREADY_APPLIED:
                checksum = result.info.checksum if result.info else ""
                dim(f"  {_CIRCLE} '{result.migration}' already applied (checksum: {checksum})")
            else:
                success(f"  {_CHECK} Migration '{result.migration}' applied successfully")
        if batch.error is not None:
            raise batch.error
        return batch.applied

    return run_command(
        config,
        "migration apply",
        apply,
        {"opt_pinned": pinned, "has_variables": variables_path is not None, "apply_all": migration is None},
    )


def cmd_adopt(
    config: SpawnConfig,
    migration: Optional[str] = None,
    *,
    yes: bool = False,
    description: str = "",
    engine_factory: Optional[EngineFactory] = None,
) -> List[str]:
    """Mark migrations as applied without running them."""
    migrator = Migrator(config)

    async def adopt() -> List[str]:
        engine = _engine(config, engine_factory)
        runner = MigrationEngine(engine)

        names = [migration] if migration else await _pending(migrator, engine)
        if migration is None and not _confirm("adopt", names, yes):
            return []

        adopted = []
        for name in names:
            await runner.adopt(name, description=description)
            success(f"  {_CHECK} Migration '{name}' adopted")
            adopted.append(name)
        return adopted

    return run_command(config, "migration adopt", adopt)


_STATUS_LABELS: Dict[tuple, str] = {
    (MigrationStatus.SUCCESS, MigrationActivity.APPLY): f"{_CHECK} Applied",
    (MigrationStatus.SUCCESS, MigrationActivity.ADOPT): f"{_CHECK} Adopted",
}


def _status_label(status: Optional[MigrationStatus], activity: Optional[MigrationActivity]) -> str:
    if status is None:
        return f"{_CIRCLE} Pending"
    if status is MigrationStatus.ATTEMPTED:
        return "! Attempted"
    if status is MigrationStatus.FAILURE:
        return f"{_CROSS} Failed"
    return _STATUS_LABELS.get((status, activity), str(status))


def cmd_status(config: SpawnConfig, *, engine_factory: Optional[EngineFactory] = None) -> List[List[str]]:
    """Combined filesystem and ledger view of every migration."""
    migrator = Migrator(config)

    async def status() -> List[List[str]]:
        engine = _engine(config, engine_factory)
        recorded = {
            i.migration_name: i for i in await MigrationEngine(engine).status(DEFAULT_NAMESPACE)
        }
        on_disk = set(migrator.list_migrations())
        rows = []
        for name in sorted(on_disk | set(recorded)):
            entry = recorded.get(name)
            rows.append([
                name,
                _CHECK if name in on_disk else _CROSS,
                _CHECK if entry else _CROSS,
                _status_label(entry.last_status if entry else None, entry.last_activity if entry else None),
            ])
        return rows

    rows = run_command(config, "migration status", status)
    if not rows:
        info("  No migrations found")
    else:
        table(["Migration", "Filesystem", "Database", "Status"], rows)
    return rows


def cmd_check(config: SpawnConfig) -> List[str]:
    """Report migrations that were never pinned."""
    def check() -> List[str]:
        if config.database is not None:
            config.target_database()
        return Migrator(config).check()

    unpinned = run_command(config, "migration check", _async(check))
    if unpinned:
        warning(f"  Found {len(unpinned)} warning(s):")
        for i, name in enumerate(unpinned, 1):
            warning(f"    {i}. Migration {name} is not pinned")
    else:
        success(f"  {_CHECK} No issues found")
    return unpinned


def _async(func):
    async def runner():
        return func()
    return runner
