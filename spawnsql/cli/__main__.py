"""spawn CLI - Main Entry Point.

Commands:
    migration  - Create, pin, build, apply and adopt migrations
    test       - Build, run and compare SQL tests
"""

import sys
from typing import Optional

import click

from . import __version__, __cli_name__
from ..config import SpawnConfig
from ..faults import Fault
from .utils.colors import error, banner, _CHECK, _CROSS
from .utils.workspace import configure_logging, load_project_config


# ═══════════════════════════════════════════════════════════════════════════
# Custom Click help formatter
# ═══════════════════════════════════════════════════════════════════════════


class SpawnGroup(click.Group):
    """Click group subclass with branded help output."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if ctx.parent is None:
            banner("spawn", subtitle=f"v{__version__}  {_CHECK}  templated SQL migrations")
            click.echo()

        super().format_help(ctx, formatter)

    def format_commands(
        self, ctx: click.Context, formatter: click.HelpFormatter
    ) -> None:
        """Format command listing with aligned columns."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands.append((subcommand, cmd.get_short_help_str(limit=48)))

        if commands:
            with formatter.section(click.style("Commands", fg="cyan", bold=True)):
                max_len = max(len(c[0]) for c in commands) + 2
                for name, help_text in commands:
                    styled_name = click.style(name.ljust(max_len), fg="green")
                    formatter.write(f"  {styled_name} {help_text}\n")


def _config(ctx: click.Context) -> SpawnConfig:
    if "config" not in ctx.obj:
        ctx.obj["config"] = load_project_config(ctx.obj.get("config_path"), ctx.obj.get("database"))
    return ctx.obj["config"]


def _fail(action: str, exc: Fault) -> None:
    error(f"  {_CROSS} {action} failed: {exc}")
    sys.exit(1)


@click.group(cls=SpawnGroup)
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='Config file (default: spawn.toml, spawn.yaml or spawn.json)')
@click.option('--database', '-d', type=str, default=None, help='Target database name')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Minimal output')
@click.pass_context
def cli(ctx, config_path: Optional[str], database: Optional[str], verbose: bool, quiet: bool):
    """Templated SQL migrations with pinned components.

    \b
    Quick start:
      spawn migration new add-users
      spawn migration build 20240101000000-add-users
      spawn migration pin 20240101000000-add-users
      spawn migration apply --pinned
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['database'] = database
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet
    configure_logging(verbose, quiet)


# ============================================================================
# Migrations
# ============================================================================

@cli.group(cls=SpawnGroup)
def migration():
    """Create, pin, build and apply migrations."""
    pass


@migration.command('new')
@click.argument('name')
@click.pass_context
def migration_new(ctx, name: str):
    """
    Create a new migration folder with a blank up.sql.

    Examples:
      spawn migration new add-users
    """
    from .commands.migration import cmd_new

    try:
        cmd_new(_config(ctx), name, quiet=ctx.obj['quiet'])
    except Fault as e:
        _fail("migration new", e)


@migration.command('pin')
@click.argument('migration_name')
@click.pass_context
def migration_pin(ctx, migration_name: str):
    """
    Snapshot components and pin them to a migration.

    Examples:
      spawn migration pin 20240101000000-add-users
    """
    from .commands.migration import cmd_pin

    try:
        cmd_pin(_config(ctx), migration_name, quiet=ctx.obj['quiet'])
    except Fault as e:
        _fail("migration pin", e)


@migration.command('build')
@click.argument('migration_name')
@click.option('--pinned', is_flag=True, help='Render with the pinned components')
@click.option('--variables', 'variables_path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='Variables file (.json, .toml, .yaml)')
@click.pass_context
def migration_build(ctx, migration_name: str, pinned: bool, variables_path: Optional[str]):
    """
    Render a migration to SQL on stdout.

    Examples:
      spawn migration build 20240101000000-add-users
      spawn migration build --pinned 20240101000000-add-users --variables vars.yaml
    """
    from .commands.migration import cmd_build

    try:
        cmd_build(_config(ctx), migration_name, pinned=pinned, variables_path=variables_path)
    except Fault as e:
        _fail("migration build", e)


@migration.command('apply')
@click.argument('migration_name', required=False)
@click.option('--pinned', is_flag=True, help='Render with the pinned components')
@click.option('--retry', is_flag=True, help='Retry a migration whose last attempt failed')
@click.option('--yes', '-y', is_flag=True, help='Apply pending migrations without asking')
@click.option('--variables', 'variables_path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='Variables file (.json, .toml, .yaml)')
@click.pass_context
def migration_apply(ctx, migration_name: Optional[str], pinned: bool, retry: bool, yes: bool,
                    variables_path: Optional[str]):
    """
    Apply a migration, or all pending migrations.

    Examples:
      spawn migration apply --pinned 20240101000000-add-users
      spawn migration apply --pinned --yes
    """
    from .commands.migration import cmd_apply

    try:
        cmd_apply(
            _config(ctx),
            migration_name,
            pinned=pinned,
            retry=retry,
            yes=yes,
            variables_path=variables_path,
            engine_factory=ctx.obj.get('engine_factory'),
        )
    except Fault as e:
        _fail("migration apply", e)


@migration.command('adopt')
@click.argument('migration_name', required=False)
@click.option('--yes', '-y', is_flag=True, help='Adopt pending migrations without asking')
@click.option('--description', type=str, default="", help='Why the migration is adopted')
@click.pass_context
def migration_adopt(ctx, migration_name: Optional[str], yes: bool, description: str):
    """
    Record a migration as applied without running it.

    Examples:
      spawn migration adopt 20240101000000-add-users --description "applied by hand"
    """
    from .commands.migration import cmd_adopt

    try:
        cmd_adopt(
            _config(ctx),
            migration_name,
            yes=yes,
            description=description,
            engine_factory=ctx.obj.get('engine_factory'),
        )
    except Fault as e:
        _fail("migration adopt", e)


@migration.command('status')
@click.pass_context
def migration_status(ctx):
    """Show filesystem and database state of every migration."""
    from .commands.migration import cmd_status

    try:
        cmd_status(_config(ctx), engine_factory=ctx.obj.get('engine_factory'))
    except Fault as e:
        _fail("migration status", e)


@migration.command('check')
@click.pass_context
def migration_check(ctx):
    """Warn about migrations that are not pinned."""
    from .commands.migration import cmd_check

    try:
        unpinned = cmd_check(_config(ctx))
    except Fault as e:
        _fail("migration check", e)
    if unpinned:
        sys.exit(2)


# ============================================================================
# SQL tests
# ============================================================================

@cli.group('test', cls=SpawnGroup)
def test_group():
    """Build, run and compare SQL tests."""
    pass


@test_group.command('new')
@click.argument('name')
@click.pass_context
def test_new(ctx, name: str):
    """Create a new test with a blank test.sql."""
    from .commands.test import cmd_test_new

    try:
        cmd_test_new(_config(ctx), name)
    except Fault as e:
        _fail("test new", e)


@test_group.command('build')
@click.argument('name')
@click.option('--variables', 'variables_path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='Variables file (.json, .toml, .yaml)')
@click.pass_context
def test_build(ctx, name: str, variables_path: Optional[str]):
    """Render a test to SQL on stdout."""
    from .commands.test import cmd_test_build

    try:
        cmd_test_build(_config(ctx), name, variables_path=variables_path)
    except Fault as e:
        _fail("test build", e)


@test_group.command('run')
@click.argument('name')
@click.option('--variables', 'variables_path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='Variables file (.json, .toml, .yaml)')
@click.pass_context
def test_run(ctx, name: str, variables_path: Optional[str]):
    """Run a test and print the database output."""
    from .commands.test import cmd_test_run

    try:
        cmd_test_run(
            _config(ctx), name,
            variables_path=variables_path,
            engine_factory=ctx.obj.get('engine_factory'),
        )
    except Fault as e:
        _fail("test run", e)


@test_group.command('expect')
@click.argument('name')
@click.option('--variables', 'variables_path', type=click.Path(exists=True, dir_okay=False),
              default=None, help='Variables file (.json, .toml, .yaml)')
@click.pass_context
def test_expect(ctx, name: str, variables_path: Optional[str]):
    """Record the current output of a test as expected."""
    from .commands.test import cmd_test_expect

    try:
        cmd_test_expect(
            _config(ctx), name,
            variables_path=variables_path,
            engine_factory=ctx.obj.get('engine_factory'),
        )
    except Fault as e:
        _fail("test expect", e)


@test_group.command('compare')
@click.argument('name', required=False)
@click.pass_context
def test_compare(ctx, name: Optional[str]):
    """
    Compare test output with the recorded expectation.

    Compares every test when NAME is omitted. Exits with status 2 when any
    output differs.
    """
    from .commands.test import cmd_test_compare

    try:
        failed = cmd_test_compare(_config(ctx), name, engine_factory=ctx.obj.get('engine_factory'))
    except Fault as e:
        _fail("test compare", e)
    if failed:
        sys.exit(2)


def main():
    """Entry point for `spawn` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
