"""Status codes and kinds used across subsystem boundaries."""

from enum import StrEnum


class SessionState(StrEnum):
    """Lifecycle state of a process session.

    A session starts OPEN and ends in exactly one of the terminal states.
    """

    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionState.OPEN


class DispositionKind(StrEnum):
    """What a session decided to do with a record.

    Every record touched by a session needs exactly one disposition
    before commit.
    """

    REMOVED = "removed"
    TRANSFERRED = "transferred"


class CaseMapping(StrEnum):
    """Text case mapping applied by the sample stage's transform."""

    NONE = "none"
    UPPER = "upper"
    LOWER = "lower"
