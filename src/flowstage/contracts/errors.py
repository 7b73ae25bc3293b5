"""Error values and exception taxonomy.

Two tiers:

- Recoverable failures (content read, transform) are carried as FlowError
  values and routed to the ``failure`` relationship. They never escape an
  invocation.
- Fatal failures (session contract violations, unexpected exceptions) are
  raised. The stage rolls its session back and re-raises to the host.
"""

from __future__ import annotations

import traceback
from collections.abc import Iterable
from dataclasses import dataclass

# Attribute keys written onto failure-routed records
ERROR_MESSAGE_ATTRIBUTE = "error.message"
ERROR_TYPE_ATTRIBUTE = "error.type"
ERROR_STACKTRACE_ATTRIBUTE = "error.stacktrace"


@dataclass(frozen=True)
class FlowError:
    """A recoverable processing error attached to a record.

    Attributes:
        message: Human-readable description (never empty)
        cause: Underlying exception, if any
    """

    message: str
    cause: BaseException | None = None

    def __post_init__(self) -> None:
        if not self.message:
            raise ValueError("FlowError requires a non-empty message")

    @classmethod
    def from_exception(cls, message: str, exc: BaseException) -> FlowError:
        return cls(message=message, cause=exc)

    def to_attributes(self, *, include_stacktrace: bool = False) -> dict[str, str]:
        """Render as record attributes.

        Args:
            include_stacktrace: Add the formatted cause traceback under
                ``error.stacktrace`` (only when a cause exists).
        """
        attributes = {ERROR_MESSAGE_ATTRIBUTE: self.message}
        if self.cause is not None:
            attributes[ERROR_TYPE_ATTRIBUTE] = type(self.cause).__name__
            if include_stacktrace:
                attributes[ERROR_STACKTRACE_ATTRIBUTE] = "".join(traceback.format_exception(self.cause)).rstrip()
        return attributes


# =============================================================================
# Recoverable exceptions
# =============================================================================


class ContentReadError(Exception):
    """Raised when a record's content cannot be read.

    Recoverable: stage logic converts it into a FlowError and routes the
    record to ``failure``.
    """

    def __init__(self, record_id: str, cause: BaseException) -> None:
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"Content of record {record_id} could not be read: {cause}")


class TransformError(Exception):
    """Raised by transform code for bad data. Recoverable."""


# =============================================================================
# Fatal exceptions
# =============================================================================


class SessionContractViolation(Exception):
    """The session's transactional contract was broken.

    This signals a programming defect, not bad data. The invocation must
    roll back and the error must reach the host.
    """

    def __init__(self, message: str, *, record_ids: Iterable[str] = ()) -> None:
        self.record_ids = tuple(record_ids)
        super().__init__(message)


class StaleRecordError(SessionContractViolation):
    """A superseded record handle was used after mutation."""

    def __init__(self, record_id: str, revision: int, current_revision: int) -> None:
        self.revision = revision
        self.current_revision = current_revision
        super().__init__(
            f"Record {record_id} revision {revision} is stale (current revision is {current_revision})",
            record_ids=(record_id,),
        )


class UnknownRecordError(SessionContractViolation):
    """A record not acquired or created in this session was used."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record {record_id} does not belong to this session", record_ids=(record_id,))


class UnknownRelationshipError(SessionContractViolation):
    """A record was transferred to a relationship the stage never declared."""

    def __init__(self, name: str, declared: Iterable[str]) -> None:
        self.name = name
        self.declared = tuple(sorted(declared))
        super().__init__(f"Relationship '{name}' is not declared (declared: {', '.join(self.declared)})")


class SessionClosedError(SessionContractViolation):
    """An operation was attempted on a committed or rolled-back session."""

    def __init__(self, session_id: str, state: str) -> None:
        self.session_id = session_id
        self.state = state
        super().__init__(f"Session {session_id} is {state}; no further operations are allowed")
