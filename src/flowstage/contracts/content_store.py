# src/flowstage/contracts/content_store.py
"""Where record content lives while records move between queues.

Records carry only a content hash. The bytes sit in a ContentStore keyed by
their SHA-256 digest, so every revision of a record that leaves content
untouched, and every child created from it, shares one stored copy.

Stores only grow: nothing in a stage's lifecycle deletes content, because a
rolled-back session hands its inputs back still pointing at their original
bytes.
"""

import hashlib
import hmac
from typing import Protocol, runtime_checkable


class IntegrityError(Exception):
    """Stored bytes no longer hash to the key they were stored under."""


def content_hash_of(content: bytes) -> str:
    """SHA-256 hex digest used as a record's content key."""
    return hashlib.sha256(content).hexdigest()


def verify_content(content_hash: str, content: bytes) -> bytes:
    """Return ``content`` if it matches ``content_hash``.

    Raises:
        IntegrityError: On mismatch
    """
    actual = content_hash_of(content)
    if not hmac.compare_digest(actual, content_hash):
        raise IntegrityError(f"Content integrity check failed: expected {content_hash}, got {actual}")
    return content


@runtime_checkable
class ContentStore(Protocol):
    """Content storage backend used by FlowRepository and ProcessSession."""

    def store(self, content: bytes) -> str:
        """Store content and return its hash. Storing the same bytes twice is a no-op."""
        ...

    def retrieve(self, content_hash: str) -> bytes:
        """Load verified content.

        Raises:
            KeyError: If nothing was stored under the hash
            IntegrityError: If the stored bytes were altered
        """
        ...
