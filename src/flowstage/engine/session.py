# src/flowstage/engine/session.py
"""Process sessions: the transaction boundary of one stage invocation.

A session accumulates acquisitions, record mutations and routing decisions,
then applies them all at once on commit or discards them on rollback:

    session = factory.create_session()
    record = session.acquire()            # in flight, invisible to others
    record = session.put_attribute(record, "k", "v")   # new handle
    session.transfer(record, REL_SUCCESS)
    session.commit()                      # dequeue + enqueue, atomically

Rules enforced here:
- A record handle is superseded by every mutation; only the newest handle
  for a record is accepted.
- Every record acquired or created in the session needs exactly one
  disposition (remove or transfer) before commit.
- Transfers only target relationships the stage declared.
- No content stream may be open at commit.
- A committed or rolled-back session accepts no further operations.
"""

from __future__ import annotations

import io
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import BinaryIO

from flowstage.contracts import (
    ContentReadError,
    DispositionKind,
    FlowRecord,
    IntegrityError,
    RecordID,
    Relationship,
    SessionClosedError,
    SessionContractViolation,
    SessionID,
    SessionState,
    StaleRecordError,
    UnknownRecordError,
    UnknownRelationshipError,
    new_record_id,
)
from flowstage.core.logging import get_logger
from flowstage.core.repository import FlowRepository

logger = get_logger(__name__)


class ProcessSession:
    """Transactional view of a FlowRepository for one invocation.

    Sessions are not thread-safe and must not be shared between
    invocations. Concurrency comes from running many sessions, each
    isolated by the repository's lock.
    """

    def __init__(
        self,
        repository: FlowRepository,
        relationships: frozenset[Relationship],
        *,
        session_id: str | None = None,
    ) -> None:
        self.session_id = SessionID(session_id or uuid.uuid4().hex)
        self._repository = repository
        self._relationships = {relationship.name: relationship for relationship in relationships}
        self._state = SessionState.OPEN

        # Acquisition order matters: rollback restores inputs in this order
        self._acquired: list[RecordID] = []
        self._created: set[RecordID] = set()
        # Newest valid handle per record
        self._current: dict[RecordID, FlowRecord] = {}
        self._dispositions: dict[RecordID, list[DispositionKind]] = {}
        self._transfers: list[tuple[Relationship, FlowRecord]] = []
        self._open_streams = 0

        self._log = logger.bind(session_id=self.session_id)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def relationships(self) -> frozenset[Relationship]:
        return frozenset(self._relationships.values())

    # === Validation helpers ===

    def _ensure_open(self) -> None:
        if self._state.is_terminal:
            raise SessionClosedError(self.session_id, self._state.value)

    def _check_current(self, record: FlowRecord) -> None:
        current = self._current.get(record.record_id)
        if current is None:
            raise UnknownRecordError(record.record_id)
        if current.revision != record.revision:
            raise StaleRecordError(record.record_id, record.revision, current.revision)

    def _check_mutable(self, record: FlowRecord) -> None:
        self._check_current(record)
        if self._dispositions.get(record.record_id):
            raise SessionContractViolation(
                f"Record {record.record_id} was already removed or transferred and cannot be modified",
                record_ids=(record.record_id,),
            )

    def _supersede(self, new_record: FlowRecord) -> FlowRecord:
        self._current[new_record.record_id] = new_record
        return new_record

    # === Acquisition ===

    def acquire(self) -> FlowRecord | None:
        """Dequeue the next pending input record, or None if there is no work.

        The record stays in flight (invisible to other sessions) until this
        session commits or rolls back.
        """
        self._ensure_open()
        record = self._repository.poll()
        if record is None:
            return None
        self._acquired.append(record.record_id)
        self._current[record.record_id] = record
        self._log.debug("Record acquired", record_id=record.record_id)
        return record

    def create(self, parent: FlowRecord | None = None) -> FlowRecord:
        """Create a brand-new record.

        Args:
            parent: If given, its attributes (never its content) are copied.
                The parent may already be removed or transferred.
        """
        self._ensure_open()
        attributes: Mapping[str, str] = {}
        if parent is not None:
            self._check_current(parent)
            attributes = parent.attributes
        record = FlowRecord(record_id=new_record_id(), attributes=dict(attributes))
        self._created.add(record.record_id)
        return self._supersede(record)

    # === Content ===

    @contextmanager
    def read_content(self, record: FlowRecord) -> Iterator[BinaryIO]:
        """Open a read-only stream over a record's content.

        The stream is closed when the block exits, on success or failure.

        Raises:
            ContentReadError: If the content cannot be loaded
        """
        self._ensure_open()
        self._check_current(record)
        try:
            data = self._repository.read_bytes(record)
        except (KeyError, IntegrityError, OSError, ValueError) as e:
            raise ContentReadError(record.record_id, e) from e

        stream = io.BufferedReader(io.BytesIO(data))
        self._open_streams += 1
        try:
            yield stream
        finally:
            stream.close()
            self._open_streams -= 1

    def read_bytes(self, record: FlowRecord) -> bytes:
        """Read a record's whole content.

        Raises:
            ContentReadError: If the content cannot be loaded
        """
        with self.read_content(record) as stream:
            return stream.read()

    def write_content(self, record: FlowRecord, data: bytes) -> FlowRecord:
        """Replace a record's content; returns the new handle."""
        self._ensure_open()
        self._check_mutable(record)
        content_hash = self._repository.content_store.store(data) if data else None
        return self._supersede(record.with_content(content_hash, len(data)))

    def import_from(self, stream: BinaryIO, record: FlowRecord) -> FlowRecord:
        """Replace a record's content with everything readable from ``stream``."""
        return self.write_content(record, stream.read())

    # === Attributes ===

    def put_attribute(self, record: FlowRecord, key: str, value: str) -> FlowRecord:
        """Set one attribute; returns the new handle."""
        return self.put_all_attributes(record, {key: value})

    def put_all_attributes(self, record: FlowRecord, attributes: Mapping[str, str]) -> FlowRecord:
        """Merge attributes; returns the new handle.

        Raises:
            TypeError: If any key or value is not a str
        """
        self._ensure_open()
        self._check_mutable(record)
        return self._supersede(record.with_attributes(attributes))

    def remove_attribute(self, record: FlowRecord, key: str) -> FlowRecord:
        """Drop one attribute; returns the new handle."""
        self._ensure_open()
        self._check_mutable(record)
        return self._supersede(record.without_attribute(key))

    # === Routing ===

    def remove(self, record: FlowRecord) -> None:
        """Terminate a record: it will not appear on any relationship."""
        self._ensure_open()
        self._check_current(record)
        self._dispositions.setdefault(record.record_id, []).append(DispositionKind.REMOVED)

    def transfer(self, record: FlowRecord, relationship: Relationship) -> None:
        """Route a record to a declared relationship on commit.

        Raises:
            UnknownRelationshipError: If the relationship was not declared
        """
        self._ensure_open()
        declared = self._relationships.get(relationship.name)
        if declared is None:
            raise UnknownRelationshipError(relationship.name, self._relationships)
        self._check_current(record)
        self._dispositions.setdefault(record.record_id, []).append(DispositionKind.TRANSFERRED)
        self._transfers.append((declared, record))

    # === Completion ===

    def _validate_for_commit(self) -> None:
        if self._open_streams:
            raise SessionContractViolation(f"{self._open_streams} content stream(s) still open at commit")

        unrouted = [record_id for record_id in self._current if not self._dispositions.get(record_id)]
        if unrouted:
            raise SessionContractViolation(
                f"Records were neither removed nor transferred before commit: {sorted(unrouted)}",
                record_ids=unrouted,
            )

        multiply_routed = [record_id for record_id, kinds in self._dispositions.items() if len(kinds) > 1]
        if multiply_routed:
            raise SessionContractViolation(
                f"Records were removed or transferred more than once: {sorted(multiply_routed)}",
                record_ids=multiply_routed,
            )

    def commit(self) -> None:
        """Apply every acquisition, removal and transfer atomically.

        Raises:
            SessionContractViolation: If any record lacks exactly one
                disposition or a stream is still open. The session stays
                open so the caller can roll back.
        """
        self._ensure_open()
        self._validate_for_commit()
        self._repository.commit(self._acquired, self._transfers)
        self._state = SessionState.COMMITTED
        self._log.debug(
            "Session committed",
            acquired=len(self._acquired),
            created=len(self._created),
            transferred=len(self._transfers),
        )

    def rollback(self, return_inputs: bool = True) -> None:
        """Discard everything this session did.

        Args:
            return_inputs: If True, acquired inputs reappear at the head of
                the input queue unchanged. If False they are released from
                flight without being requeued.
        """
        self._ensure_open()
        if return_inputs:
            self._repository.restore(self._acquired)
        else:
            self._repository.release(self._acquired)
        self._state = SessionState.ROLLED_BACK
        self._log.debug("Session rolled back", acquired=len(self._acquired), returned=return_inputs)
        self._current.clear()
        self._dispositions.clear()
        self._transfers.clear()


class SessionFactory:
    """Creates sessions bound to one repository and a stage's relationships."""

    def __init__(self, repository: FlowRepository, relationships: frozenset[Relationship]) -> None:
        self.repository = repository
        self.relationships = relationships

    def create_session(self) -> ProcessSession:
        return ProcessSession(self.repository, self.relationships)
