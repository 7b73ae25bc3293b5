# src/flowstage/core/content_store.py
"""Content store backends.

``memory`` keeps content for the life of the process and suits tests and
one-shot CLI runs. ``filesystem`` keeps it under a directory so large inputs
stay off the heap:

    base_path/ab/abcdef0123...   (first two hex characters fan out directories)
"""

import re
import uuid
from pathlib import Path
from threading import Lock

from flowstage.contracts.content_store import ContentStore, IntegrityError, content_hash_of, verify_content
from flowstage.core.logging import get_logger

__all__ = ["FilesystemContentStore", "MemoryContentStore", "create_content_store"]

logger = get_logger(__name__)

_SHA256_HEX = re.compile(r"[a-f0-9]{64}")


def _check_hash(content_hash: str) -> None:
    # A well-formed digest can never name a path outside the store
    if not _SHA256_HEX.fullmatch(content_hash):
        raise ValueError(f"Invalid content_hash: must be 64 lowercase hex characters, got {content_hash[:50]!r}")


class FilesystemContentStore:
    """Content store backed by one file per distinct content."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, content_hash: str) -> Path:
        _check_hash(content_hash)
        return self.base_path / content_hash[:2] / content_hash

    def store(self, content: bytes) -> str:
        """Store content, reusing an intact existing copy.

        A damaged existing copy is replaced, so re-ingesting the same input
        repairs the store instead of failing.
        """
        content_hash = content_hash_of(content)
        path = self._path(content_hash)
        if path.exists():
            try:
                verify_content(content_hash, path.read_bytes())
                return content_hash
            except IntegrityError:
                logger.warning("Replacing damaged content file", content_hash=content_hash, path=str(path))

        path.parent.mkdir(parents=True, exist_ok=True)
        # Readers never see a partially written file
        tmp_path = path.with_name(f"{content_hash}.{uuid.uuid4().hex}.tmp")
        tmp_path.write_bytes(content)
        tmp_path.replace(path)
        return content_hash

    def retrieve(self, content_hash: str) -> bytes:
        """Load verified content.

        Raises:
            KeyError: If the content file is missing
            IntegrityError: If the file no longer matches its hash
        """
        try:
            content = self._path(content_hash).read_bytes()
        except FileNotFoundError:
            raise KeyError(f"Content not found: {content_hash}") from None
        return verify_content(content_hash, content)


class MemoryContentStore:
    """Content store held in a dict. Safe for concurrent sessions."""

    def __init__(self) -> None:
        self._storage: dict[str, bytes] = {}
        self._lock = Lock()

    def store(self, content: bytes) -> str:
        content_hash = content_hash_of(content)
        with self._lock:
            self._storage.setdefault(content_hash, bytes(content))
        return content_hash

    def retrieve(self, content_hash: str) -> bytes:
        _check_hash(content_hash)
        with self._lock:
            content = self._storage.get(content_hash)
        if content is None:
            raise KeyError(f"Content not found: {content_hash}")
        return verify_content(content_hash, content)


def create_content_store(backend: str, base_path: Path | None = None) -> ContentStore:
    """Build a content store for the configured backend.

    Raises:
        ValueError: On unknown backend or a filesystem backend without base_path
    """
    if backend == "memory":
        return MemoryContentStore()
    if backend == "filesystem":
        if base_path is None:
            raise ValueError("Filesystem content store requires base_path")
        return FilesystemContentStore(base_path)
    raise ValueError(f"Unknown content store backend: {backend!r}")
