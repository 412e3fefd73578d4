"""
Snapshot - hash a directory tree into the object store.

Each file becomes a blob, each directory a tree of its sorted children, and
the walk returns the root tree hash. Walking byte-identical directories
always reproduces the same root hash.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from ..faults import NotADirectoryFault, SnapshotIOFault
from .objects import HashStore
from .tree import Entry, EntryKind, Tree

logger = logging.getLogger("spawnsql.store.snapshot")


class SnapshotEngine:
    """Walks directories and records them in a :class:`HashStore`."""

    def __init__(self, store: HashStore) -> None:
        self.store = store

    def snapshot(self, root_dir: str | Path) -> str:
        """
        Snapshot *root_dir* and return its tree hash.

        Symlinks are never followed. Blobs written before a failure stay in
        the store; they are content-addressed and harmless.

        Raises:
            NotADirectoryFault: If *root_dir* is not a directory.
            SnapshotIOFault: If a file or directory cannot be read.
        """
        root = Path(root_dir)
        if root.is_symlink() or not root.is_dir():
            raise NotADirectoryFault(str(root))

        digest = self._snapshot_dir(root)
        logger.info("Snapshot of %s → %s", root, digest)
        return digest

    def _snapshot_dir(self, directory: Path) -> str:
        entries: List[Entry] = []

        try:
            children = sorted(os.scandir(directory), key=lambda d: os.fsencode(d.name))
        except OSError as exc:
            raise SnapshotIOFault(str(directory), str(exc)) from exc

        for child in children:
            path = Path(child.path)
            try:
                child.name.encode("utf-8")
            except UnicodeEncodeError as exc:
                shown = os.fsencode(child.path).decode("utf-8", errors="backslashreplace")
                raise SnapshotIOFault(shown, "file name is not valid UTF-8") from exc

            if child.is_symlink():
                logger.warning("Skipping symlink %s", path)
                continue

            if child.is_dir(follow_symlinks=False):
                entries.append(Entry(EntryKind.TREE, child.name, self._snapshot_dir(path)))
            elif child.is_file(follow_symlinks=False):
                try:
                    data = path.read_bytes()
                except OSError as exc:
                    raise SnapshotIOFault(str(path), str(exc)) from exc
                entries.append(Entry(EntryKind.BLOB, child.name, self.store.put(data)))
            else:
                logger.warning("Skipping special file %s", path)

        return self.store.put(Tree.of(entries).serialize())
