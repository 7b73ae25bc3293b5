"""Shared contracts for cross-boundary data types.

All dataclasses, enums and exceptions that cross subsystem boundaries are
defined here. This package is a LEAF MODULE with no outbound dependencies
to core/engine/stages.

Import patterns:
    # Contracts (lightweight, no heavy dependencies)
    from flowstage.contracts import FlowRecord, Relationship, StepResult

    # Settings classes (from core, pulls in pydantic/dynaconf)
    from flowstage.core.config import FlowStageSettings
"""

from flowstage.contracts.content_store import ContentStore, IntegrityError
from flowstage.contracts.descriptors import (
    PropertyDescriptor,
    ValidationContext,
    ValidationResult,
)
from flowstage.contracts.enums import CaseMapping, DispositionKind, SessionState
from flowstage.contracts.errors import (
    ERROR_MESSAGE_ATTRIBUTE,
    ERROR_STACKTRACE_ATTRIBUTE,
    ERROR_TYPE_ATTRIBUTE,
    ContentReadError,
    FlowError,
    SessionClosedError,
    SessionContractViolation,
    StaleRecordError,
    TransformError,
    UnknownRecordError,
    UnknownRelationshipError,
)
from flowstage.contracts.records import (
    REL_FAILURE,
    REL_SUCCESS,
    FlowRecord,
    Relationship,
    new_record_id,
)
from flowstage.contracts.results import StepResult
from flowstage.contracts.types import RecordID, RelationshipName, SessionID

__all__ = [
    # content_store
    "ContentStore",
    "IntegrityError",
    # descriptors
    "PropertyDescriptor",
    "ValidationContext",
    "ValidationResult",
    # enums
    "CaseMapping",
    "DispositionKind",
    "SessionState",
    # errors
    "ERROR_MESSAGE_ATTRIBUTE",
    "ERROR_STACKTRACE_ATTRIBUTE",
    "ERROR_TYPE_ATTRIBUTE",
    "ContentReadError",
    "FlowError",
    "SessionClosedError",
    "SessionContractViolation",
    "StaleRecordError",
    "TransformError",
    "UnknownRecordError",
    "UnknownRelationshipError",
    # records
    "REL_FAILURE",
    "REL_SUCCESS",
    "FlowRecord",
    "Relationship",
    "new_record_id",
    # results
    "StepResult",
    # types
    "RecordID",
    "RelationshipName",
    "SessionID",
]
