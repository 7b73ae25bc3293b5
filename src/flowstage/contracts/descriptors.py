"""Stage descriptor types.

Configuration schema and validation results a stage advertises to its host.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PropertyDescriptor:
    """Describes one configurable stage property.

    Only ``name`` is required; a descriptor built from a bare name is what
    a stage returns for properties it does not define.
    """

    name: str
    description: str = ""
    required: bool = False
    default_value: str | None = None
    allowed_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("PropertyDescriptor name must be non-empty")
        if self.allowed_values and self.default_value is not None and self.default_value not in self.allowed_values:
            raise ValueError(f"Default value {self.default_value!r} for '{self.name}' is not one of {list(self.allowed_values)}")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one aspect of stage configuration."""

    valid: bool
    subject: str | None = None
    explanation: str | None = None

    @classmethod
    def ok(cls, subject: str | None = None) -> ValidationResult:
        return cls(valid=True, subject=subject)

    @classmethod
    def invalid(cls, subject: str, explanation: str) -> ValidationResult:
        return cls(valid=False, subject=subject, explanation=explanation)


@dataclass(frozen=True)
class ValidationContext:
    """Property values a stage validates against."""

    properties: dict[str, Any] = field(default_factory=dict)
