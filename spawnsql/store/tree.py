"""
Tree objects - ordered directory listings stored in the object store.

A tree is serialized as TOML so that the stored object stays readable::

    [[entries]]
    kind = "Blob"
    hash = "0c3f6e9d4b1a..."
    name = "products.sql"

Entries are always sorted by name (byte-wise) before serialization; the
tree's own hash depends on that order.
"""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

import tomli_w

_HASH_RE = re.compile(r"^[0-9a-f]{32}$")


class EntryKind(str, Enum):
    """Kind of a tree child."""

    BLOB = "Blob"
    TREE = "Tree"


@dataclass(frozen=True)
class Entry:
    """One child of a tree."""

    kind: EntryKind
    name: str
    hash: str

    def sort_key(self) -> bytes:
        return self.name.encode("utf-8", "surrogateescape")

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "hash": self.hash, "name": self.name}


@dataclass(frozen=True)
class Tree:
    """An ordered sequence of entries."""

    entries: Tuple[Entry, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, entries: List[Entry]) -> "Tree":
        """Build a tree with entries in canonical order."""
        return cls(entries=tuple(sorted(entries, key=Entry.sort_key)))

    def serialize(self) -> bytes:
        doc = {"entries": [e.to_dict() for e in self.entries]}
        return tomli_w.dumps(doc).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> "Tree":
        """
        Decode a stored tree.

        Raises:
            ValueError: If *data* is not a well-formed tree document.
        """
        try:
            doc = tomllib.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
            raise ValueError(f"not a TOML document ({exc})") from exc

        raw_entries = doc.get("entries")
        if not isinstance(raw_entries, list):
            raise ValueError("missing 'entries' list")

        return cls(entries=tuple(_parse_entry(raw) for raw in raw_entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


def _parse_entry(raw: Any) -> Entry:
    if not isinstance(raw, dict):
        raise ValueError(f"entry is not a table: {raw!r}")

    try:
        kind = EntryKind(raw.get("kind"))
    except ValueError:
        raise ValueError(f"unknown entry kind {raw.get('kind')!r}") from None

    name = raw.get("name")
    if not isinstance(name, str) or not name or name in (".", "..") or "/" in name:
        raise ValueError(f"invalid entry name {name!r}")

    digest = raw.get("hash")
    if not isinstance(digest, str) or not _HASH_RE.match(digest):
        raise ValueError(f"invalid hash {digest!r} for entry '{name}'")

    return Entry(kind=kind, name=name, hash=digest)
