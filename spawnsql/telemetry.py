"""
Anonymous usage telemetry.

Events are handed to a sink from a detached task so a command never waits
on them; ``flush`` gives the pending task a short grace period at exit.
Telemetry is off when the project config says ``telemetry = false`` or
``DO_NOT_TRACK`` is set. Sink errors are logged at debug level and
otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from . import __version__

logger = logging.getLogger("spawnsql.telemetry")

FLUSH_TIMEOUT = 0.3


@dataclass
class TelemetryEvent:
    distinct_id: str
    command: str
    status: str = "success"
    duration_ms: int = 0
    error_kind: Optional[str] = None
    version: str = __version__
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def log_sink(event: TelemetryEvent) -> None:
    logger.debug("telemetry event: %s", event.to_dict())


def tracking_disabled_by_env() -> bool:
    return "DO_NOT_TRACK" in os.environ


class Telemetry:
    """
    Fire-and-forget event recorder.

    Only one event is in flight at a time; recording a new event while one
    is pending replaces the slot after chaining onto the previous task.
    """

    def __init__(
        self,
        enabled: bool = True,
        *,
        project_id: Optional[str] = None,
        sink: Optional[Callable[[TelemetryEvent], Awaitable[None]]] = None,
    ):
        self.enabled = enabled and not tracking_disabled_by_env()
        self.distinct_id = project_id or str(uuid.uuid4())
        self.sink = sink or log_sink
        self._pending: Optional[asyncio.Task] = None

    def record(
        self,
        command: str,
        properties: Optional[Dict[str, Any]] = None,
        *,
        status: str = "success",
        duration_ms: int = 0,
        error_kind: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """Schedule delivery of one event. Requires a running event loop."""
        if not self.enabled:
            return None

        event = TelemetryEvent(
            distinct_id=self.distinct_id,
            command=command,
            status=status,
            duration_ms=duration_ms,
            error_kind=error_kind,
            properties=dict(properties or {}),
        )
        previous = self._pending
        self._pending = asyncio.get_running_loop().create_task(self._deliver(event, previous))
        return self._pending

    async def _deliver(self, event: TelemetryEvent, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await asyncio.gather(previous, return_exceptions=True)
        try:
            await self.sink(event)
        except Exception as exc:
            logger.debug("telemetry sink failed: %r", exc)

    async def flush(self, timeout: float = FLUSH_TIMEOUT) -> None:
        """Wait up to *timeout* seconds for the pending event; never raises."""
        task, self._pending = self._pending, None
        if task is None:
            return
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.debug("telemetry flush timed out after %.1fs", timeout)
            task.cancel()
