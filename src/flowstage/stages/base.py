# src/flowstage/stages/base.py
"""Base class for stage implementations.

A stage is a standalone component instantiated directly by whatever embeds
it. Hosts talk to it through a small explicit interface:

    stage = SampleStage(options)
    stage.initialize(StageInitializationContext(identifier=stage.identifier, logger=...))
    stage.relationships                    # frozenset, fixed at construction
    stage.on_trigger(context, session_factory)

Lifecycle Contract:
    __init__(config) -> initialize(ctx) -> on_trigger(...)*

- __init__: computes the declared relationships once. They never change.
- initialize: receives the host's logging collaborator. Must run before
  the first on_trigger.
- on_trigger: one invocation. Opens exactly one session and ends it with
  exactly one commit or one rollback.

Error tiers inside on_trigger:
- Recoverable errors are handled by subclasses inside process() and
  turned into records routed to a failure relationship.
- Anything that escapes process() or commit() is fatal, KeyboardInterrupt
  and SystemExit included: the session is rolled back with inputs
  returned, and the exception reaches the host.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

import structlog

from flowstage.contracts import (
    PropertyDescriptor,
    Relationship,
    SessionState,
    ValidationContext,
    ValidationResult,
)
from flowstage.core.logging import get_logger, invocation_context
from flowstage.core.repository import FlowRepository
from flowstage.engine.session import ProcessSession, SessionFactory


@dataclass(frozen=True)
class StageInitializationContext:
    """What a host hands a stage before the first invocation."""

    identifier: str
    logger: structlog.stdlib.BoundLogger


@dataclass(frozen=True)
class ProcessContext:
    """Per-invocation context: the stage's configured property values."""

    properties: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)


class BaseStage(ABC):
    """Base class for all stages.

    Subclasses declare ``relationships_declared`` and implement
    ``process(session, context)``. The base class owns the transaction
    envelope: it never lets a session end without exactly one commit or
    rollback.

    Example:
        class CopyStage(BaseStage):
            identifier = "copy"
            relationships_declared = (REL_SUCCESS,)

            def process(self, session, context):
                record = session.acquire()
                if record is None:
                    return
                session.transfer(record, REL_SUCCESS)
    """

    identifier: ClassVar[str] = "Base"
    description: ClassVar[str] = ""
    event_driven: ClassVar[bool] = True
    relationships_declared: ClassVar[tuple[Relationship, ...]] = ()

    def __init__(self, config: dict[str, Any] | None = None, *, identifier: str | None = None) -> None:
        """Initialize with configuration.

        Args:
            config: Stage configuration
            identifier: Overrides the class-level identifier
        """
        self.config = dict(config or {})
        if identifier is not None:
            self.identifier = identifier  # type: ignore[misc]
        self._relationships = frozenset(self.relationships_declared)
        self.logger: structlog.stdlib.BoundLogger = get_logger(type(self).__module__).bind(stage=self.identifier)

    @property
    def relationships(self) -> frozenset[Relationship]:
        """The closed set of outbound relationships, fixed at construction."""
        return self._relationships

    def initialize(self, context: StageInitializationContext) -> None:
        """Capture the host's logging collaborator."""
        self.logger = context.logger

    def session_factory(self, repository: FlowRepository) -> SessionFactory:
        """Build a session factory bound to this stage's relationships."""
        return SessionFactory(repository, self._relationships)

    def on_trigger(self, context: ProcessContext, session_factory: SessionFactory) -> None:
        """Run one invocation inside one session.

        A session that ``process`` already committed or rolled back itself
        is left as it is.

        Raises:
            BaseException: Any fatal error, interrupts included, after the
                session was rolled back with its inputs returned to the
                input queue.
        """
        session = session_factory.create_session()
        with invocation_context(self.identifier, session.session_id):
            try:
                self.process(session, context)
                if session.state is SessionState.OPEN:
                    session.commit()
            except BaseException:
                if session.state is SessionState.OPEN:
                    self.logger.exception("Invocation failed; rolling back")
                    session.rollback(return_inputs=True)
                raise

    @abstractmethod
    def process(self, session: ProcessSession, context: ProcessContext) -> None:
        """Acquire, transform and route records; on_trigger commits."""
        ...

    # === Descriptor hooks ===

    def property_descriptors(self) -> list[PropertyDescriptor]:
        """Configurable properties; none by default."""
        return []

    def property_descriptor(self, name: str) -> PropertyDescriptor:
        """Look up a property descriptor, defaulting to a bare one for unknown names."""
        for descriptor in self.property_descriptors():
            if descriptor.name == name:
                return descriptor
        return PropertyDescriptor(name=name)

    def on_property_modified(self, descriptor: PropertyDescriptor, old_value: str | None, new_value: str | None) -> None:
        """Called by the host when a property value changes."""
        pass

    def validate(self, context: ValidationContext) -> list[ValidationResult]:
        """Validate configuration; always valid by default."""
        return [ValidationResult.ok()]
