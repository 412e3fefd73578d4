"""
SQL regression tests.

A test is a folder under ``tests/`` holding ``test.sql`` (a template
rendered against live components) and ``expected`` (the database output
recorded by ``expect``). ``compare`` runs the test and diffs the output
against ``expected``.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from .config import SpawnConfig
from .engine import Engine
from .faults import SqlTestExistsFault, SqlTestNotFoundFault
from .templates import LiveComponentSource, TemplateRenderer

logger = logging.getLogger("spawnsql.sqltest")

TEST_SCRIPT_NAME = "test.sql"
EXPECTED_NAME = "expected"
BASE_TEST = "-- Queries whose output is compared with 'expected'\nSELECT 1;\n"


@dataclass
class TestOutcome:
    """``diff`` is ``None`` when the output matches ``expected``."""
    __test__ = False

    diff: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.diff is None


def unified_diff(expected: str, actual: str, *, name: str = "") -> Optional[str]:
    lines = list(difflib.unified_diff(
        expected.splitlines(keepends=True),
        actual.splitlines(keepends=True),
        fromfile=f"{name}/expected" if name else "expected",
        tofile=f"{name}/actual" if name else "actual",
    ))
    if not lines:
        return None
    return "".join(line if line.endswith("\n") else line + "\n" for line in lines)


class Tester:
    """Builds, runs and checks one SQL test."""
    __test__ = False

    def __init__(self, config: SpawnConfig, name: str):
        self.config = config
        self.name = name

    @property
    def folder(self) -> Path:
        return self.config.test_folder(self.name)

    @property
    def script_path(self) -> Path:
        return self.folder / TEST_SCRIPT_NAME

    @property
    def expected_path(self) -> Path:
        return self.folder / EXPECTED_NAME

    @classmethod
    def discover(cls, config: SpawnConfig) -> List["Tester"]:
        root = config.tests_folder
        if not root.is_dir():
            return []
        return [
            cls(config, p.name)
            for p in sorted(root.iterdir())
            if (p / TEST_SCRIPT_NAME).is_file()
        ]

    def create(self) -> Path:
        if self.folder.exists():
            raise SqlTestExistsFault(self.name, str(self.folder))
        self.folder.mkdir(parents=True)
        self.script_path.write_text(BASE_TEST, encoding="utf-8")
        logger.info("Created test %s", self.folder)
        return self.folder

    def build(self, variables: Any = None) -> str:
        if not self.script_path.is_file():
            raise SqlTestNotFoundFault(self.name, str(self.script_path))
        renderer = TemplateRenderer(
            LiveComponentSource(self.config.components_folder),
            environment=self.config.effective_environment(),
        )
        return renderer.render(self.script_path, variables)

    async def run(self, engine: Engine, variables: Any = None) -> str:
        sql = self.build(variables)
        output = await engine.execute([sql.encode("utf-8")])
        return output.decode("utf-8", errors="replace")

    async def compare(self, engine: Engine, variables: Any = None) -> TestOutcome:
        try:
            expected = self.expected_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise SqlTestNotFoundFault(self.name, str(self.expected_path)) from exc

        actual = await self.run(engine, variables)
        return TestOutcome(diff=unified_diff(expected, actual, name=self.name))

    async def expect(self, engine: Engine, variables: Any = None) -> str:
        """Record the current output as the expectation."""
        actual = await self.run(engine, variables)
        self.expected_path.write_text(actual, encoding="utf-8")
        logger.info("Wrote expectations for %s", self.name)
        return actual
