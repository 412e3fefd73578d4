"""
Lock files - ``pin = "<root_hash>"`` naming a migration's pinned snapshot.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

import tomli_w

from ..faults import CorruptLockFault
from .objects import is_valid_hash

logger = logging.getLogger("spawnsql.store.lockfile")

LOCK_FILE_NAME = "lock.toml"


@dataclass(frozen=True)
class LockData:
    """Root tree hash pinned for one migration."""

    pin: str

    def to_toml(self) -> str:
        return tomli_w.dumps({"pin": self.pin})

    @classmethod
    def from_toml(cls, text: str, *, source: str = "<lock>") -> "LockData":
        try:
            doc = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise CorruptLockFault(source, str(exc)) from exc

        pin = doc.get("pin")
        if not isinstance(pin, str) or not is_valid_hash(pin):
            raise CorruptLockFault(source, f"'pin' must be a 32 character hex hash, got {pin!r}")
        return cls(pin=pin)

    @classmethod
    def read(cls, path: str | Path) -> "LockData":
        """Load a lock file. ``FileNotFoundError`` propagates to the caller."""
        path = Path(path)
        return cls.from_toml(path.read_text(encoding="utf-8"), source=str(path))

    def write(self, path: str | Path) -> None:
        path = Path(path)
        path.write_text(self.to_toml(), encoding="utf-8")
        logger.info("Wrote lock file: %s → %s", self.pin, path)
