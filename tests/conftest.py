# tests/conftest.py
"""Shared test fixtures and helpers.

Test Stages:
- CopyStage: transfers every acquired record to success unchanged
- ForgetfulStage: acquires a record and never routes it (contract violation)
- ExplodingStage: raises after acquiring (unexpected fatal error)
- DoubleRoutingStage: removes AND transfers the same record

Test Stores:
- CorruptingContentStore: keeps bytes that don't match their hash
- UnreadableContentStore: raises OSError on every retrieve

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Iterator

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from flowstage.contracts import REL_FAILURE, REL_SUCCESS
from flowstage.core.content_store import MemoryContentStore
from flowstage.core.repository import FlowRepository
from flowstage.engine.session import ProcessSession, SessionFactory
from flowstage.stages.base import BaseStage, ProcessContext
from flowstage.stages.sample import SampleStage

# =============================================================================
# Hypothesis profiles
# =============================================================================

settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("nightly", max_examples=1000, deadline=None)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
    deadline=None,
)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Test Stores
# =============================================================================


class CorruptingContentStore(MemoryContentStore):
    """Keeps tampered bytes under the hash of the content it was given."""

    def store(self, content: bytes) -> str:
        content_hash = super().store(content)
        with self._lock:
            self._storage[content_hash] = content + b"\x00tampered"
        return content_hash


class UnreadableContentStore(MemoryContentStore):
    """Stores correctly, fails with an I/O error on retrieve."""

    def retrieve(self, content_hash: str) -> bytes:
        raise OSError(5, "Input/output error")


# =============================================================================
# Test Stages
# =============================================================================


class CopyStage(BaseStage):
    """Forwards every acquired record to success unchanged."""

    identifier = "copy"
    relationships_declared = (REL_SUCCESS, REL_FAILURE)

    def process(self, session: ProcessSession, context: ProcessContext) -> None:
        record = session.acquire()
        if record is None:
            return
        session.transfer(record, REL_SUCCESS)


class ForgetfulStage(BaseStage):
    """Acquires a record and neither removes nor transfers it."""

    identifier = "forgetful"
    relationships_declared = (REL_SUCCESS,)

    def process(self, session: ProcessSession, context: ProcessContext) -> None:
        record = session.acquire()
        if record is not None:
            session.put_attribute(record, "touched", "yes")


class ExplodingStage(BaseStage):
    """Acquires a record, routes it, then hits an unexpected error."""

    identifier = "exploding"
    relationships_declared = (REL_SUCCESS,)

    def process(self, session: ProcessSession, context: ProcessContext) -> None:
        record = session.acquire()
        if record is None:
            return
        session.transfer(record, REL_SUCCESS)
        raise RuntimeError("transactional substrate is broken")


class DoubleRoutingStage(BaseStage):
    """Removes a record and then transfers it as well."""

    identifier = "double"
    relationships_declared = (REL_SUCCESS,)

    def process(self, session: ProcessSession, context: ProcessContext) -> None:
        record = session.acquire()
        if record is None:
            return
        session.remove(record)
        session.transfer(record, REL_SUCCESS)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Keep structlog and root logger configuration from leaking between tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def repository() -> FlowRepository:
    return FlowRepository(MemoryContentStore())


@pytest.fixture
def session_factory(repository: FlowRepository) -> SessionFactory:
    return SessionFactory(repository, frozenset({REL_SUCCESS, REL_FAILURE}))


@pytest.fixture
def session(session_factory: SessionFactory) -> ProcessSession:
    return session_factory.create_session()


@pytest.fixture
def sample_stage() -> SampleStage:
    return SampleStage()


@pytest.fixture
def context() -> ProcessContext:
    return ProcessContext()
