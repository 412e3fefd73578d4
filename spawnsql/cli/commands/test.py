"""
SQL test commands: new, build, run, compare, expect.
"""

from typing import Callable, List, Optional

import click

from ...config import SpawnConfig
from ...engine import Engine, create_engine
from ...sqltest import Tester
from ...variables import load_variables
from ..utils.colors import success, error, info, kv, bold, _CHECK, _CROSS
from ..utils.workspace import run_command

EngineFactory = Callable[..., Engine]


def _engine(config: SpawnConfig, engine_factory: Optional[EngineFactory]) -> Engine:
    return (engine_factory or create_engine)(config.target_database())


def cmd_test_new(config: SpawnConfig, name: str) -> None:
    async def create():
        return Tester(config, name).create()

    folder = run_command(config, "test new", create)
    success(f"  {_CHECK} Created test '{name}'")
    kv("Folder", str(folder))


def cmd_test_build(config: SpawnConfig, name: str, *, variables_path: Optional[str] = None) -> str:
    async def build() -> str:
        variables = load_variables(variables_path) if variables_path else None
        return Tester(config, name).build(variables)

    sql = run_command(config, "test build", build)
    click.echo(sql, nl=False)
    return sql


def cmd_test_run(
    config: SpawnConfig,
    name: str,
    *,
    variables_path: Optional[str] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> str:
    async def run() -> str:
        variables = load_variables(variables_path) if variables_path else None
        return await Tester(config, name).run(_engine(config, engine_factory), variables)

    output = run_command(config, "test run", run)
    click.echo(output, nl=False)
    return output


def cmd_test_expect(
    config: SpawnConfig,
    name: str,
    *,
    variables_path: Optional[str] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> None:
    async def expect() -> str:
        variables = load_variables(variables_path) if variables_path else None
        return await Tester(config, name).expect(_engine(config, engine_factory), variables)

    run_command(config, "test expect", expect)
    success(f"  {_CHECK} Recorded expected output for '{name}'")


def cmd_test_compare(
    config: SpawnConfig,
    name: Optional[str] = None,
    *,
    engine_factory: Optional[EngineFactory] = None,
) -> List[str]:
    """
    Compare one test, or all tests, against their expectations.

    Returns:
        Names of the tests whose output differed
    """
    testers = [Tester(config, name)] if name else Tester.discover(config)

    async def compare() -> List[str]:
        engine = _engine(config, engine_factory)
        failed = []
        for tester in testers:
            outcome = await tester.compare(engine)
            if outcome.passed:
                success(f"  {_CHECK} [PASS] {tester.name}")
            else:
                failed.append(tester.name)
                error(f"  {_CROSS} [FAIL] {bold(tester.name)}")
                click.echo(outcome.diff)
        return failed

    failed = run_command(config, "test compare", compare, {"is_comparing_all": name is None})
    if not testers:
        info("  No tests found")
    elif failed:
        error(f"  {_CROSS} Differences found in {len(failed)} test(s)")
    return failed
