"""
Tests for migration folders: create, pin, check and build.
"""

from datetime import datetime, timezone

import pytest

from spawnsql.faults import (
    FragmentNotFoundFault,
    LockFileMissingFault,
    MigrationExistsFault,
    MigrationNotFoundFault,
)
from spawnsql.migrator import BASE_MIGRATION, Migrator
from spawnsql.store import LockData

NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def migrator(project):
    return Migrator(project)


@pytest.fixture
def migration(migrator, project, write):
    """A migration including one component."""
    write(project.components_folder / "users.sql", "CREATE TABLE users ({{ variables.col|escape_identifier }} int);\n")
    name = migrator.create("add-users", now=NOW)
    write(migrator.script_path(name), "BEGIN;\n{% include 'users.sql' %}COMMIT;\n")
    return name


class TestCreate:

    def test_create(self, migrator):
        name = migrator.create("init", now=NOW)
        assert name == "20240102030405-init"
        assert migrator.script_path(name).read_text() == BASE_MIGRATION

    def test_create_existing(self, migrator):
        migrator.create("init", now=NOW)
        with pytest.raises(MigrationExistsFault):
            migrator.create("init", now=NOW)

    def test_list_is_sorted(self, migrator):
        migrator.create("b", now=datetime(2024, 2, 1, tzinfo=timezone.utc))
        migrator.create("a", now=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert migrator.list_migrations() == ["20240101000000-a", "20240201000000-b"]

    def test_list_without_folder(self, project):
        project.spawn_folder = "elsewhere"
        assert Migrator(project).list_migrations() == []


class TestPin:

    def test_pin_writes_lock(self, migrator, migration):
        root = migrator.pin(migration)
        assert migrator.read_lock(migration) == LockData(pin=root)
        assert root in migrator.store()

    def test_pin_unknown_migration(self, migrator):
        with pytest.raises(MigrationNotFoundFault):
            migrator.pin("20990101000000-nope")

    def test_read_lock_missing(self, migrator, migration):
        with pytest.raises(LockFileMissingFault):
            migrator.read_lock(migration)

    def test_check_lists_unpinned(self, migrator, migration):
        other = migrator.create("second", now=datetime(2024, 5, 1, tzinfo=timezone.utc))
        assert migrator.check() == [migration, other]
        migrator.pin(migration)
        assert migrator.check() == [other]


class TestBuild:

    def test_live_build(self, migrator, migration):
        sql = migrator.build(migration, variables={"col": "id"})
        assert sql == 'BEGIN;\nCREATE TABLE users ("id" int);\nCOMMIT;\n'

    def test_pinned_build_ignores_component_edits(self, migrator, migration, project, write):
        migrator.pin(migration)
        write(project.components_folder / "users.sql", "DROP TABLE users;\n")

        pinned = migrator.build(migration, pinned=True, variables={"col": "id"})
        live = migrator.build(migration, variables={"col": "id"})
        assert pinned == 'BEGIN;\nCREATE TABLE users ("id" int);\nCOMMIT;\n'
        assert live == "BEGIN;\nDROP TABLE users;\nCOMMIT;\n"

    def test_pinned_build_requires_lock(self, migrator, migration):
        with pytest.raises(LockFileMissingFault):
            migrator.build(migration, pinned=True)

    def test_pinned_missing_component(self, migrator, migration, write):
        migrator.pin(migration)
        write(migrator.script_path(migration), "{% include 'added-later.sql' %}")
        with pytest.raises(FragmentNotFoundFault):
            migrator.build(migration, pinned=True)

    def test_live_build_of_pinned_warns(self, migrator, migration, caplog):
        migrator.pin(migration)
        migrator.build(migration, variables={"col": "id"})
        assert "built from live components" in caplog.text

    def test_environment_reaches_template(self, migrator, project, write):
        name = migrator.create("env", now=NOW)
        write(migrator.script_path(name), "-- {{ env }}\n")
        project.environment = "prod"
        assert migrator.build(name) == "-- 'prod'\n"

    def test_pending_is_lazy(self, migrator, migration):
        migrator.pin(migration)
        pending = migrator.pending(migration, pinned=True, variables={"col": "id"})
        assert pending.pin_hash == migrator.read_lock(migration).pin
        assert callable(pending.script)
        assert "CREATE TABLE users" in pending.script()
