"""
Component sources - where ``{% include %}`` finds its fragments.

Two variants share the single ``load(name)`` capability:

- ``LiveComponentSource``   - the components folder as it is on disk now
- ``PinnedComponentSource`` - the snapshot named by a migration's lock file

``load`` returns ``None`` for unknown names so the template engine can report
a missing fragment as a template error.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from ..faults import UninitializedSourceFault
from ..store import HashStore, PinResolver

logger = logging.getLogger("spawnsql.templates.sources")


def normalize_name(name: str) -> Optional[str]:
    """
    Canonical ``a/b/c.sql`` form of a component name.

    Returns ``None`` for names that would escape the component root.
    """
    parts = [p for p in name.replace("\\", "/").split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        return None
    return "/".join(parts)


class ComponentSource:
    """Minimal interface every component source implements."""

    def load(self, name: str) -> Optional[bytes]:
        raise NotImplementedError

    def describe(self, name: str) -> str:
        """Human-readable origin of *name*, used in template tracebacks."""
        return name


class LiveComponentSource(ComponentSource):
    """Reads components relative to *base_dir*."""

    __slots__ = ("base_dir",)

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def load(self, name: str) -> Optional[bytes]:
        normalized = normalize_name(name)
        if normalized is None:
            return None
        path = self.base_dir / normalized
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def describe(self, name: str) -> str:
        return str(self.base_dir / name)

    def __repr__(self) -> str:
        return f"LiveComponentSource({str(self.base_dir)!r})"


class PinnedComponentSource(ComponentSource):
    """
    Reads components from a pinned snapshot.

    The path mapping is computed once by :meth:`initialize` (or supplied
    directly) and never changes afterwards.
    """

    __slots__ = ("store", "root_hash", "_mapping")

    def __init__(
        self,
        store: HashStore,
        root_hash: Optional[str] = None,
        *,
        mapping: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.store = store
        self.root_hash = root_hash
        self._mapping = mapping

    @classmethod
    def from_pin(cls, store: HashStore, root_hash: str) -> "PinnedComponentSource":
        """Create and initialize a source for *root_hash*."""
        return cls(store, root_hash).initialize()

    @property
    def initialized(self) -> bool:
        return self._mapping is not None

    def initialize(self) -> "PinnedComponentSource":
        if self._mapping is None:
            if self.root_hash is None:
                raise ValueError("PinnedComponentSource needs a root hash to initialize")
            self._mapping = PinResolver(self.store).resolve(self.root_hash)
            logger.debug("Pinned source %s holds %d component(s)", self.root_hash, len(self._mapping))
        return self

    def load(self, name: str) -> Optional[bytes]:
        if self._mapping is None:
            raise UninitializedSourceFault(name)
        normalized = normalize_name(name)
        if normalized is None:
            return None
        digest = self._mapping.get(normalized)
        if digest is None:
            return None
        return self.store.get(digest)

    def describe(self, name: str) -> str:
        return f"{self.root_hash}:{name}"

    def __repr__(self) -> str:
        return f"PinnedComponentSource(root_hash={self.root_hash!r})"
