"""
Tests for the psql engine.

A small Python script stands in for psql: it echoes ``\\echo`` lines,
answers advisory lock queries and exits with an error on ``RAISE``.
"""

import sys

import pytest

from spawnsql.config import DatabaseConfig
from spawnsql.engine import (
    LedgerEntry,
    MigrationActivity,
    MigrationStatus,
    PsqlEngine,
    create_engine,
)
from spawnsql.engine.psql import PSQL_PREAMBLE, record_query
from spawnsql.faults import AdvisoryLockFault, EngineUnavailableFault, ProcessFault
from spawnsql.runner import MigrationEngine
from spawnsql.sql import EscapedIdentifier, InsecureRawSql, sql_query

FAKE_PSQL = r'''
import sys

for line in sys.stdin:
    line = line.rstrip("\n")
    if line.startswith("\\echo "):
        print(line[len("\\echo "):], flush=True)
    elif "pg_try_advisory_lock" in line:
        print(LOCK_ANSWER, flush=True)
    elif line.startswith("RAISE"):
        sys.stderr.write("ERROR:  boom\n")
        sys.stderr.flush()
        sys.exit(3)
    elif line.startswith("SELECT "):
        print(line[len("SELECT "):].rstrip(";"), flush=True)
'''


def _fake_psql(tmp_path, lock_answer):
    script = tmp_path / "fake_psql.py"
    script.write_text(FAKE_PSQL.replace("LOCK_ANSWER", repr(lock_answer)))
    return [sys.executable, str(script)]


@pytest.fixture
def fake_psql(tmp_path):
    return _fake_psql(tmp_path, "t")


@pytest.fixture
def busy_psql(tmp_path):
    """A psql whose advisory locks are always held elsewhere."""
    return PsqlEngine(_fake_psql(tmp_path, "f"))


@pytest.fixture
def psql(fake_psql):
    return PsqlEngine(fake_psql)


# ════════════════════════════════════════════════════════════════════════
# Construction
# ════════════════════════════════════════════════════════════════════════


class TestCreateEngine:

    def test_from_config(self):
        engine = create_engine(DatabaseConfig(command=["psql", "mydb"], spawn_schema="ledger"))
        assert isinstance(engine, PsqlEngine)
        assert engine.command == ["psql", "mydb"]
        assert engine.schema_ident.as_sql() == '"ledger"'

    def test_unknown_engine(self):
        with pytest.raises(EngineUnavailableFault) as exc_info:
            create_engine(DatabaseConfig(engine="mysql", command=["mysql"]))
        assert "postgres-psql" in exc_info.value.metadata["reason"]

    def test_empty_command(self):
        with pytest.raises(EngineUnavailableFault):
            create_engine(DatabaseConfig(command=[]))


# ════════════════════════════════════════════════════════════════════════
# Sessions
# ════════════════════════════════════════════════════════════════════════


class TestPsqlSession:

    @pytest.mark.asyncio
    async def test_stream_and_sync(self, psql):
        async with psql.raw_session() as session:
            await session.stream([b"CREATE TABLE t ();\n", b"INSERT INTO t DEFAULT VALUES"])
            assert session.alive

    @pytest.mark.asyncio
    async def test_try_lock(self, psql):
        async with psql.session() as session:
            assert await session.try_lock(42) is True
            await session.unlock(42)

    @pytest.mark.asyncio
    async def test_blocking_lock(self, psql):
        async with psql.raw_session() as session:
            await session.lock(42)
            await session.unlock(42)
            assert session.alive

    @pytest.mark.asyncio
    async def test_query_rows(self, psql):
        async with psql.raw_session() as session:
            rows = await session.query(sql_query("SELECT {};", InsecureRawSql("a,b")))
        assert rows == [["a", "b"]]

    @pytest.mark.asyncio
    async def test_sql_error_becomes_process_fault(self, psql):
        async with psql.raw_session() as session:
            with pytest.raises(ProcessFault) as exc_info:
                await session.stream([b"RAISE;\n"])
            assert not session.alive
        assert exc_info.value.exit_code == 3
        assert "boom" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        engine = PsqlEngine([str(tmp_path / "no-such-psql")])
        with pytest.raises(EngineUnavailableFault):
            async with engine.session():
                pass


# ════════════════════════════════════════════════════════════════════════
# execute
# ════════════════════════════════════════════════════════════════════════


class TestExecute:

    @pytest.mark.asyncio
    async def test_returns_stdout(self, psql):
        output = await psql.execute([b"SELECT hello;\n", b"SELECT world;\n"])
        assert output == b"hello\nworld\n"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, psql):
        with pytest.raises(ProcessFault) as exc_info:
            await psql.execute([b"RAISE;\n"])
        assert exc_info.value.exit_code == 3

    @pytest.mark.asyncio
    async def test_failing_command(self):
        engine = PsqlEngine([sys.executable, "-c", "import sys; sys.stderr.write('nope'); sys.exit(2)"])
        with pytest.raises(ProcessFault) as exc_info:
            await engine.execute([b"SELECT 1;\n"])
        assert exc_info.value.exit_code == 2
        assert exc_info.value.stderr == "nope"


# ════════════════════════════════════════════════════════════════════════
# Lock contention
# ════════════════════════════════════════════════════════════════════════


class TestLockContention:

    @pytest.mark.asyncio
    async def test_ledger_bootstrap_waits_for_lock(self, busy_psql):
        await busy_psql.ensure_ledger()

    @pytest.mark.asyncio
    async def test_apply_reports_advisory_lock_fault(self, busy_psql):
        runner = MigrationEngine(busy_psql)
        with pytest.raises(AdvisoryLockFault) as exc_info:
            await runner.apply("m1", "SELECT 1;")
        assert exc_info.value.metadata["namespace"] == "default"
        assert exc_info.value.metadata["migration"] == "m1"


# ════════════════════════════════════════════════════════════════════════
# Ledger SQL
# ════════════════════════════════════════════════════════════════════════


class TestRecordQuery:

    def test_escapes_values(self):
        entry = LedgerEntry(
            migration_name="20240101000000-it's",
            namespace="default",
            status=MigrationStatus.SUCCESS,
            activity=MigrationActivity.ADOPT,
            description="by hand",
        )
        sql = record_query(EscapedIdentifier("_spawn"), entry).as_sql()
        assert 'INSERT INTO "_spawn".migration (name, namespace)' in sql
        assert "'20240101000000-it''s'" in sql
        assert "'ADOPT'" in sql
        assert "'SUCCESS'" in sql
        assert "'by hand'" in sql
        assert "INTERVAL '0.000000 second'" in sql
        assert sql.rstrip().endswith("NULL\nFROM upserted;")

    def test_pin_hash_and_checksum(self):
        entry = LedgerEntry(
            migration_name="m",
            namespace="default",
            status=MigrationStatus.ATTEMPTED,
            activity=MigrationActivity.APPLY,
            checksum="ab" * 16,
            pin_hash="cd" * 16,
        )
        sql = record_query(EscapedIdentifier("_spawn"), entry).as_sql()
        assert f"decode('{'ab' * 16}', 'hex')" in sql
        assert f"'{'cd' * 16}'" in sql

    def test_preamble_stops_on_error(self):
        assert b"ON_ERROR_STOP on" in PSQL_PREAMBLE
