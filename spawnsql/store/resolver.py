"""
Pin resolution - expand a root tree hash into ``path -> hash``.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Mapping

from ..faults import CorruptTreeFault, ObjectNotFoundFault
from .objects import HashStore
from .tree import EntryKind, Tree

logger = logging.getLogger("spawnsql.store.resolver")


class PinResolver:
    """
    Reconstructs the file mapping of a pinned snapshot.

    Paths are relative to the snapshot root and joined with ``/``.
    """

    def __init__(self, store: HashStore) -> None:
        self.store = store

    def resolve(self, root_hash: str) -> Mapping[str, str]:
        """
        Resolve *root_hash* to a read-only ``{relative_path: blob_hash}``.

        Raises:
            CorruptTreeFault: If an object cannot be decoded as a tree.
            ObjectNotFoundFault: If a referenced object is missing.
        """
        mapping: Dict[str, str] = {}
        self._expand(root_hash, "", mapping)
        logger.debug("Resolved %s to %d file(s)", root_hash, len(mapping))
        return MappingProxyType(mapping)

    def read_tree(self, digest: str) -> Tree:
        data = self.store.get(digest)
        try:
            return Tree.deserialize(data)
        except ValueError as exc:
            raise CorruptTreeFault(digest, str(exc)) from exc

    def _expand(self, digest: str, base: str, mapping: Dict[str, str]) -> None:
        for entry in self.read_tree(digest):
            path = f"{base}/{entry.name}" if base else entry.name
            if entry.kind is EntryKind.BLOB:
                if entry.hash not in self.store:
                    raise ObjectNotFoundFault(entry.hash, str(self.store.path_for(entry.hash)))
                mapping[path] = entry.hash
            else:
                self._expand(entry.hash, path, mapping)
