"""Step outcomes.

These types answer: "What did a read or transform step produce?"

IMPORTANT: StepResult.status uses Literal["success", "error"], NOT an enum.
A step that fails on bad data returns an error result; it does not raise.
Raising is reserved for fatal conditions that must roll the session back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from flowstage.contracts.errors import FlowError

T = TypeVar("T")


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Result of a recoverable processing step.

    Use the factory methods to create instances.
    """

    status: Literal["success", "error"]
    value: T | None = None
    error: FlowError | None = None

    def __post_init__(self) -> None:
        """Validate invariants - exactly one of value/error matches the status."""
        if self.status == "success" and self.error is not None:
            raise ValueError("StepResult with status='success' must not carry an error")
        if self.status == "error" and self.error is None:
            raise ValueError(
                "StepResult with status='error' MUST provide a FlowError. "
                "Use StepResult.failure(FlowError(...)) to create error results."
            )

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, value: T) -> StepResult[T]:
        return cls(status="success", value=value)

    @classmethod
    def failure(cls, error: FlowError) -> StepResult[T]:
        return cls(status="error", error=error)
