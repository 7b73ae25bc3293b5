# src/flowstage/core/repository.py
"""Flow repository: the queues around a stage.

Holds the input queue, one output queue per relationship, the set of
in-flight records and the content store. All queue state is guarded by a
single lock so that a session's acquire, commit and rollback are atomic
and isolated from concurrent sessions.

Hosts use the public ``ingest``/``enqueue``/``drain`` methods. Sessions use
``poll``, ``commit`` and ``restore``; nothing else mutates queue state while
a stage is running.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from threading import Lock

from flowstage.contracts import ContentStore, FlowRecord, RecordID, Relationship, new_record_id
from flowstage.core.content_store import MemoryContentStore
from flowstage.core.logging import get_logger

logger = get_logger(__name__)


class FlowRepository:
    """In-process queue infrastructure for one stage.

    Usage:
        repository = FlowRepository()
        repository.ingest(b"abc", {"filename": "a.txt"})

        session = SessionFactory(repository, stage.relationships).create_session()
        ...

        routed = repository.drain("success")
    """

    def __init__(self, content_store: ContentStore | None = None) -> None:
        self.content_store: ContentStore = content_store if content_store is not None else MemoryContentStore()
        self._lock = Lock()
        self._input: deque[FlowRecord] = deque()
        self._in_flight: dict[RecordID, FlowRecord] = {}
        self._outputs: dict[str, deque[FlowRecord]] = {}

    # === Host side ===

    def ingest(self, content: bytes, attributes: Mapping[str, str] | None = None) -> FlowRecord:
        """Store ``content`` and enqueue a new record for it on the input queue."""
        content_hash = self.content_store.store(content) if content else None
        record = FlowRecord(
            record_id=new_record_id(),
            attributes=dict(attributes or {}),
            content_hash=content_hash,
            size=len(content),
        )
        self.enqueue(record)
        return record

    def enqueue(self, record: FlowRecord) -> None:
        """Append an existing record to the input queue.

        Raises:
            ValueError: If a record with the same identity is already queued or in flight
        """
        with self._lock:
            if record.record_id in self._in_flight or any(r.record_id == record.record_id for r in self._input):
                raise ValueError(f"Record {record.record_id} is already pending")
            self._input.append(record)

    def pending(self) -> tuple[FlowRecord, ...]:
        """Snapshot of the input queue in FIFO order."""
        with self._lock:
            return tuple(self._input)

    def queued(self, relationship_name: str) -> tuple[FlowRecord, ...]:
        """Snapshot of a relationship's queue in FIFO order (empty if never used)."""
        with self._lock:
            return tuple(self._outputs.get(relationship_name, ()))

    def drain(self, relationship_name: str) -> list[FlowRecord]:
        """Remove and return every record queued on a relationship."""
        with self._lock:
            queue = self._outputs.pop(relationship_name, deque())
        return list(queue)

    def relationship_names(self) -> list[str]:
        """Names of relationships that have received records."""
        with self._lock:
            return sorted(self._outputs)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._input)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def read_bytes(self, record: FlowRecord) -> bytes:
        """Host-side content lookup for a queued record (b"" when it has none)."""
        if record.content_hash is None:
            return b""
        return self.content_store.retrieve(record.content_hash)

    # === Session side ===

    def poll(self) -> FlowRecord | None:
        """Dequeue the next input record and mark it in flight.

        Never blocks: returns None when the input queue is empty.
        """
        with self._lock:
            if not self._input:
                return None
            record = self._input.popleft()
            self._in_flight[record.record_id] = record
        return record

    def commit(
        self,
        acquired: Iterable[RecordID],
        transfers: Sequence[tuple[Relationship, FlowRecord]],
    ) -> None:
        """Atomically release acquired inputs and enqueue transferred records.

        Removed records need no action here: they are simply not transferred.

        Raises:
            RuntimeError: If an acquired record is not in flight. Nothing is
                applied in that case.
        """
        acquired_ids = list(acquired)
        with self._lock:
            missing = [record_id for record_id in acquired_ids if record_id not in self._in_flight]
            if missing:
                raise RuntimeError(f"Records are not in flight and cannot be committed: {missing}")
            for record_id in acquired_ids:
                del self._in_flight[record_id]
            for relationship, record in transfers:
                self._outputs.setdefault(relationship.name, deque()).append(record)

    def restore(self, acquired: Sequence[RecordID]) -> list[FlowRecord]:
        """Return in-flight records to the head of the input queue.

        Records keep their acquisition order and their original handle, so
        attributes and content are exactly what was dequeued.
        """
        with self._lock:
            records = [self._in_flight.pop(record_id) for record_id in acquired if record_id in self._in_flight]
            self._input.extendleft(reversed(records))
        return records

    def release(self, acquired: Sequence[RecordID]) -> list[FlowRecord]:
        """Drop in-flight records without returning them to the input queue."""
        with self._lock:
            records = [self._in_flight.pop(record_id) for record_id in acquired if record_id in self._in_flight]
        if records:
            logger.warning(
                "In-flight records released without requeue",
                record_ids=[record.record_id for record in records],
            )
        return records
