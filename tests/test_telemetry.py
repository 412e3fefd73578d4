"""
Tests for fire-and-forget usage telemetry.
"""

import asyncio

import pytest

from spawnsql import __version__
from spawnsql.telemetry import Telemetry, TelemetryEvent


@pytest.fixture(autouse=True)
def tracking_allowed(monkeypatch):
    monkeypatch.delenv("DO_NOT_TRACK", raising=False)


class Collector:
    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.events = []
        self.delay = delay
        self.fail = fail

    async def __call__(self, event: TelemetryEvent) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("endpoint unreachable")
        self.events.append(event)


class TestTelemetry:

    @pytest.mark.asyncio
    async def test_record_and_flush(self):
        sink = Collector()
        telemetry = Telemetry(project_id="proj-1", sink=sink)
        telemetry.record("migration apply", {"pinned": True}, duration_ms=12)
        await telemetry.flush()

        [event] = sink.events
        assert event.distinct_id == "proj-1"
        assert event.command == "migration apply"
        assert event.properties == {"pinned": True}
        assert event.to_dict()["version"] == __version__

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        sink = Collector()
        telemetry = Telemetry(sink=sink)
        telemetry.record("first")
        telemetry.record("second", status="error", error_kind="PROCESS_FAILED")
        await telemetry.flush()

        assert [e.command for e in sink.events] == ["first", "second"]
        assert sink.events[1].error_kind == "PROCESS_FAILED"

    @pytest.mark.asyncio
    async def test_disabled(self):
        sink = Collector()
        telemetry = Telemetry(enabled=False, sink=sink)
        assert telemetry.record("migration new") is None
        await telemetry.flush()
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_do_not_track(self, monkeypatch):
        monkeypatch.setenv("DO_NOT_TRACK", "1")
        telemetry = Telemetry(sink=Collector())
        assert not telemetry.enabled
        assert telemetry.record("migration new") is None

    @pytest.mark.asyncio
    async def test_sink_errors_are_swallowed(self):
        telemetry = Telemetry(sink=Collector(fail=True))
        task = telemetry.record("migration pin")
        await telemetry.flush()
        assert task.done()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_flush_times_out(self):
        sink = Collector(delay=5)
        telemetry = Telemetry(sink=sink)
        task = telemetry.record("slow")

        loop = asyncio.get_running_loop()
        started = loop.time()
        await telemetry.flush(timeout=0.05)
        assert loop.time() - started < 1

        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled()
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_flush_without_events(self):
        await Telemetry(sink=Collector()).flush()
