"""
Object Store - content-addressed, write-once blob storage.

Objects live under git-style sharded paths::

    <root>/
      0c/
        3f6e9d4b1a...     ← first two hex chars are the directory
      a1/
        ...

``put`` is idempotent: identical bytes always map to the same hash and the
same path, and a second write of existing content is skipped.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import uuid
from pathlib import Path

from ..faults import ObjectNotFoundFault, ObjectWriteFault

logger = logging.getLogger("spawnsql.store.objects")

HASH_HEX_LENGTH = 32
_HASH_RE = re.compile(r"^[0-9a-f]{32}$")


def content_hash(data: bytes) -> str:
    """128-bit content digest as 32 lowercase hex characters."""
    return hashlib.blake2b(data, digest_size=HASH_HEX_LENGTH // 2).hexdigest()


def is_valid_hash(value: str) -> bool:
    return bool(_HASH_RE.match(value))


class HashStore:
    """
    Filesystem object store rooted at *root*.

    Safe under concurrent writers of the same content: every write lands in
    a unique temporary sibling and is moved into place with ``os.replace``.
    """

    __slots__ = ("root",)

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    # ── Paths ────────────────────────────────────────────────────────

    def path_for(self, digest: str) -> Path:
        """
        Storage path for *digest*; a pure function of the hash.

        Raises:
            ObjectNotFoundFault: If *digest* is not a well-formed hash.
        """
        if not is_valid_hash(digest):
            raise ObjectNotFoundFault(str(digest), str(self.root), reason="malformed object hash")
        return self.root / digest[:2] / digest[2:]

    def exists(self, digest: str) -> bool:
        return self.path_for(digest).is_file()

    # ── Read / write ─────────────────────────────────────────────────

    def put(self, data: bytes) -> str:
        """Store *data* unless already present; return its hash."""
        digest = content_hash(data)
        path = self.path_for(digest)

        if path.exists():
            logger.debug("Object %s already stored", digest)
            return digest

        tmp = path.with_name(f".{path.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as exc:
            if tmp.exists():
                tmp.unlink()
            raise ObjectWriteFault(digest, str(path), str(exc)) from exc

        logger.debug("Stored object %s (%d bytes)", digest, len(data))
        return digest

    def get(self, digest: str) -> bytes:
        """
        Read the object stored under *digest*.

        Raises:
            ObjectNotFoundFault: If the object is missing or unreadable.
        """
        path = self.path_for(digest)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFoundFault(digest, str(path)) from exc
        except OSError as exc:
            raise ObjectNotFoundFault(digest, str(path), reason=str(exc)) from exc

    def __contains__(self, digest: object) -> bool:
        return isinstance(digest, str) and is_valid_hash(digest) and self.exists(digest)

    def __repr__(self) -> str:
        return f"HashStore(root={str(self.root)!r})"
