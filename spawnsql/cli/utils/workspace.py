"""
Utility functions for locating the project and running commands.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ...config import CONFIG_FILE_NAMES, SpawnConfig, load_config
from ...faults import Fault
from ...telemetry import Telemetry

T = TypeVar("T")

logger = logging.getLogger("spawnsql.cli")


def find_project_root(start_path: Optional[Path] = None) -> Optional[Path]:
    """
    Find the project root by looking for spawn.toml, spawn.yaml or spawn.json.

    Searches upward from start_path (or cwd) until finding a config file.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()
    while True:
        if any((current / name).is_file() for name in CONFIG_FILE_NAMES):
            return current
        if current == current.parent:
            return None
        current = current.parent


def load_project_config(
    config_path: Optional[str] = None,
    database: Optional[str] = None,
) -> SpawnConfig:
    """Load the project config, applying the ``--database`` override."""
    overrides = {"database": database} if database else None
    cwd = None if config_path else find_project_root()
    return load_config(config_path, overrides=overrides, cwd=cwd)


def configure_logging(verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def run_command(
    config: SpawnConfig,
    command: str,
    action: Callable[[], Awaitable[T]],
    properties: Optional[dict] = None,
) -> T:
    """
    Run *action* in a fresh event loop and report it to telemetry.

    Faults from *action* propagate after the telemetry event is flushed.
    """
    telemetry = Telemetry(config.telemetry, project_id=config.project_id)

    async def _main() -> Any:
        started = time.monotonic()
        try:
            result = await action()
        except Fault as exc:
            logger.debug("%s failed: %s", command, exc.to_dict())
            telemetry.record(
                command,
                properties,
                status="error",
                duration_ms=int((time.monotonic() - started) * 1000),
                error_kind=exc.code,
            )
            raise
        else:
            telemetry.record(
                command,
                properties,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            return result
        finally:
            await telemetry.flush()

    return asyncio.run(_main())
