# tests/property/test_session_properties.py
"""Property-based tests for session and stage routing invariants.

Every record a stage acquires must end up in exactly one place: removed,
on exactly one relationship, or back on the input queue after a rollback.

Properties tested:
- Draining the sample stage routes every input exactly once
- Failure routing is determined by decodability alone, and failed records
  keep their attributes and content
- Rollback restores the input queue byte-for-byte, in order
- Records are conserved under any interleaving of commits and rollbacks
"""

from __future__ import annotations

import hypothesis.strategies as st
from hypothesis import given
from hypothesis.stateful import RuleBasedStateMachine, invariant, rule

from flowstage.contracts import ERROR_MESSAGE_ATTRIBUTE, REL_FAILURE, REL_SUCCESS
from flowstage.core.repository import FlowRepository
from flowstage.engine.runner import StageRunner
from flowstage.engine.session import SessionFactory
from flowstage.stages.base import ProcessContext
from flowstage.stages.sample import READ_FAILURE_MESSAGE, TRANSFORM_FAILURE_MESSAGE, SampleStage
from tests.conftest import CopyStage, ExplodingStage
from tests.property.settings import SLOW_SETTINGS, STANDARD_SETTINGS, STATE_MACHINE_SETTINGS

# =============================================================================
# Strategies
# =============================================================================

# Mix of valid text and arbitrary bytes (often invalid UTF-8)
record_contents = st.lists(
    st.one_of(
        st.text(max_size=40).map(lambda s: s.encode("utf-8")),
        st.binary(max_size=40),
    ),
    max_size=15,
)

attribute_maps = st.dictionaries(
    keys=st.text(min_size=1, max_size=10, alphabet="abcdefghijklmnopqrstuvwxyz_"),
    values=st.text(max_size=20),
    max_size=5,
)


def _is_utf8(content: bytes) -> bool:
    try:
        content.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


# =============================================================================
# Routing
# =============================================================================


class TestExactlyOnceRouting:
    @given(contents=record_contents)
    @STANDARD_SETTINGS
    def test_every_input_is_routed_exactly_once(self, contents: list[bytes]) -> None:
        """Property: success + failure == inputs, nothing left pending or in flight."""
        repository = FlowRepository()
        for content in contents:
            repository.ingest(content)

        summary = StageRunner(SampleStage(), repository).run()

        assert summary.invocations == len(contents)
        assert len(repository.queued("success")) + len(repository.queued("failure")) == len(contents)
        assert repository.pending_count == 0
        assert repository.in_flight_count == 0

    @given(contents=record_contents)
    @STANDARD_SETTINGS
    def test_failures_are_exactly_the_undecodable_inputs(self, contents: list[bytes]) -> None:
        """Property: a record fails iff its content is not valid UTF-8."""
        repository = FlowRepository()
        for content in contents:
            repository.ingest(content)

        StageRunner(SampleStage(), repository).run()

        expected_failures = sorted(c for c in contents if not _is_utf8(c))
        failed = repository.queued("failure")
        assert sorted(repository.read_bytes(r) for r in failed) == expected_failures
        assert all(r.get(ERROR_MESSAGE_ATTRIBUTE) == TRANSFORM_FAILURE_MESSAGE for r in failed)
        assert all(r.get("isThisAGoodExample") == "sure" for r in repository.queued("success"))

    @given(content=st.binary(min_size=1, max_size=40), attributes=attribute_maps)
    @STANDARD_SETTINGS
    def test_failed_record_keeps_attributes(self, content: bytes, attributes: dict[str, str]) -> None:
        """Property: error annotation adds error.* keys and never drops existing ones."""
        repository = FlowRepository()
        original = repository.ingest(content, attributes)

        StageRunner(SampleStage(), repository).run()

        routed = repository.queued("failure") or repository.queued("success")
        assert len(routed) == 1
        record = routed[0]
        for key, value in attributes.items():
            assert record.get(key) == value
        if record.get(ERROR_MESSAGE_ATTRIBUTE) is not None:
            assert record.get(ERROR_MESSAGE_ATTRIBUTE) in (READ_FAILURE_MESSAGE, TRANSFORM_FAILURE_MESSAGE)
            assert record.record_id == original.record_id
            assert repository.read_bytes(record) == content

    @given(contents=record_contents)
    @SLOW_SETTINGS
    def test_pooled_run_routes_every_input_exactly_once(self, contents: list[bytes]) -> None:
        """Property: concurrency never duplicates or loses a record."""
        repository = FlowRepository()
        for content in contents:
            repository.ingest(content)

        StageRunner(SampleStage(), repository, max_workers=4).run()

        routed = repository.queued("success") + repository.queued("failure")
        assert len(routed) == len(contents)
        assert len({r.record_id for r in routed}) == len(contents)
        assert repository.in_flight_count == 0


# =============================================================================
# Rollback
# =============================================================================


class TestRollbackRestores:
    @given(
        contents=st.lists(st.binary(max_size=20), min_size=1, max_size=10),
        attributes=attribute_maps,
        data=st.data(),
    )
    @STANDARD_SETTINGS
    def test_rollback_restores_queue(
        self, contents: list[bytes], attributes: dict[str, str], data: st.DataObject
    ) -> None:
        """Property: after any mutations and rollback, the queue is unchanged."""
        repository = FlowRepository()
        for content in contents:
            repository.ingest(content, attributes)
        before = repository.pending()
        take = data.draw(st.integers(min_value=1, max_value=len(contents)))

        session = SessionFactory(repository, frozenset({REL_SUCCESS, REL_FAILURE})).create_session()
        for _ in range(take):
            record = session.acquire()
            assert record is not None
            record = session.put_attribute(record, "touched", "yes")
            record = session.write_content(record, b"overwritten")
            session.transfer(record, REL_SUCCESS)
        session.rollback()

        assert repository.pending() == before
        assert [repository.read_bytes(r) for r in repository.pending()] == contents
        assert repository.relationship_names() == []


# =============================================================================
# Conservation under interleaving
# =============================================================================


class RecordConservation(RuleBasedStateMachine):
    """Ingest, commit and roll back in any order; no record is ever lost."""

    def __init__(self) -> None:
        super().__init__()
        self.repository = FlowRepository()
        self.copy_stage = CopyStage()
        self.exploding_stage = ExplodingStage()
        self.ingested = 0

    @rule(content=st.binary(max_size=10))
    def ingest(self, content: bytes) -> None:
        self.repository.ingest(content)
        self.ingested += 1

    @rule()
    def commit_one(self) -> None:
        pending = self.repository.pending_count
        self.copy_stage.on_trigger(ProcessContext(), self.copy_stage.session_factory(self.repository))
        assert self.repository.pending_count == max(pending - 1, 0)

    @rule()
    def roll_back_one(self) -> None:
        before = self.repository.pending()
        try:
            self.exploding_stage.on_trigger(ProcessContext(), self.exploding_stage.session_factory(self.repository))
        except RuntimeError:
            pass
        assert self.repository.pending() == before

    @invariant()
    def records_are_conserved(self) -> None:
        routed = len(self.repository.queued("success"))
        assert self.repository.pending_count + routed == self.ingested

    @invariant()
    def nothing_left_in_flight(self) -> None:
        assert self.repository.in_flight_count == 0


RecordConservation.TestCase.settings = STATE_MACHINE_SETTINGS
TestRecordConservation = RecordConservation.TestCase
