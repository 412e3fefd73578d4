"""
Content-addressed component store.

- ``HashStore``      - write-once objects at ``<root>/<hash[:2]>/<hash[2:]>``
- ``SnapshotEngine`` - directory tree → root tree hash
- ``PinResolver``    - root tree hash → ``{relative_path: hash}``
- ``LockData``       - per-migration ``lock.toml`` naming the pinned root
"""

from .objects import HashStore, content_hash, is_valid_hash
from .tree import Entry, EntryKind, Tree
from .snapshot import SnapshotEngine
from .resolver import PinResolver
from .lockfile import LockData, LOCK_FILE_NAME

__all__ = [
    "HashStore",
    "content_hash",
    "is_valid_hash",
    "Entry",
    "EntryKind",
    "Tree",
    "SnapshotEngine",
    "PinResolver",
    "LockData",
    "LOCK_FILE_NAME",
]
