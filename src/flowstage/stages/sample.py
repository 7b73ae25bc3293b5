# src/flowstage/stages/sample.py
"""Sample stage: read, transform, annotate, route.

Per invocation:

    ACQUIRE -> nothing queued -> commit with no side effects
            -> record -> READ -> TRANSFORM -> ROUTE_SUCCESS
                           |          |
                           +----+-----+
                                v
                 MAP_ERROR -> ANNOTATE -> ROUTE_FAILURE

READ and TRANSFORM return StepResults; they never raise for bad data.
Failed records keep their content and gain ``error.*`` attributes. A
successful record is replaced by a child carrying the transformed content
and the marker attribute.
"""

from typing import Any

from pydantic import ValidationError

from flowstage.contracts import (
    REL_FAILURE,
    REL_SUCCESS,
    CaseMapping,
    ContentReadError,
    FlowError,
    FlowRecord,
    PropertyDescriptor,
    StepResult,
    TransformError,
    ValidationContext,
    ValidationResult,
)
from flowstage.core.config import SampleStageOptions
from flowstage.engine.session import ProcessSession
from flowstage.stages.base import BaseStage, ProcessContext

READ_FAILURE_MESSAGE = "Failed to read the flowfile"
TRANSFORM_FAILURE_MESSAGE = "Failed to transform the flowfile"


def _format_default(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SampleStage(BaseStage):
    """Decode, case-map and re-encode record content; route on the outcome.

    Config options:
        attribute_name: Marker attribute set on success (default: isThisAGoodExample)
        attribute_value: Marker value (default: sure)
        encoding: Content text encoding (default: utf-8)
        case: none | upper | lower (default: none)
        include_stacktrace: Add error.stacktrace on failure (default: False)
    """

    identifier = "Base"
    description = "A stage that can be used for learning flow processing or for extending"
    event_driven = True
    relationships_declared = (REL_SUCCESS, REL_FAILURE)

    def __init__(self, config: dict[str, Any] | None = None, *, identifier: str | None = None) -> None:
        super().__init__(config, identifier=identifier)
        self._options = SampleStageOptions.model_validate(self.config)

    @property
    def options(self) -> SampleStageOptions:
        return self._options

    def process(self, session: ProcessSession, context: ProcessContext) -> None:
        record = session.acquire()
        if record is None:
            # Triggered with nothing queued
            return

        outcome = self._read(session, record)
        if outcome.ok:
            assert outcome.value is not None
            outcome = self._transform(outcome.value)

        if outcome.ok:
            assert outcome.value is not None
            self._route_success(session, record, outcome.value)
        else:
            assert outcome.error is not None
            self._route_failure(session, record, outcome.error)

    def transform(self, content: bytes) -> bytes:
        """Decode, apply the configured case mapping, re-encode.

        Raises:
            TransformError: If content is not valid in the configured encoding
        """
        encoding = self._options.encoding
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError as e:
            raise TransformError(f"Content is not valid {encoding}: {e.reason}") from e
        if self._options.case is CaseMapping.UPPER:
            text = text.upper()
        elif self._options.case is CaseMapping.LOWER:
            text = text.lower()
        return text.encode(encoding)

    def _read(self, session: ProcessSession, record: FlowRecord) -> StepResult[bytes]:
        try:
            return StepResult.success(session.read_bytes(record))
        except ContentReadError as e:
            return StepResult.failure(FlowError.from_exception(READ_FAILURE_MESSAGE, e.cause))

    def _transform(self, content: bytes) -> StepResult[bytes]:
        # Any failure in the transform itself is a data problem, not a session problem
        try:
            return StepResult.success(self.transform(content))
        except Exception as e:
            return StepResult.failure(FlowError.from_exception(TRANSFORM_FAILURE_MESSAGE, e))

    def _route_success(self, session: ProcessSession, record: FlowRecord, content: bytes) -> None:
        # The input is replaced, not forwarded
        session.remove(record)
        output = session.create(record)
        output = session.write_content(output, content)
        output = session.put_attribute(output, self._options.attribute_name, self._options.attribute_value)
        session.transfer(output, REL_SUCCESS)
        self.logger.debug("Record transformed", record_id=record.record_id, output_id=output.record_id)

    def _route_failure(self, session: ProcessSession, record: FlowRecord, error: FlowError) -> None:
        self.logger.error(error.message, record_id=record.record_id, exc_info=error.cause)
        failed = session.put_all_attributes(
            record,
            error.to_attributes(include_stacktrace=self._options.include_stacktrace),
        )
        session.transfer(failed, REL_FAILURE)

    # === Descriptor hooks ===

    def property_descriptors(self) -> list[PropertyDescriptor]:
        descriptors = []
        for name, info in SampleStageOptions.model_fields.items():
            allowed: tuple[str, ...] = ()
            if name == "case":
                allowed = tuple(mapping.value for mapping in CaseMapping)
            descriptors.append(
                PropertyDescriptor(
                    name=name,
                    description=info.description or "",
                    required=info.is_required(),
                    default_value=_format_default(info.default),
                    allowed_values=allowed,
                )
            )
        return descriptors

    def on_property_modified(self, descriptor: PropertyDescriptor, old_value: str | None, new_value: str | None) -> None:
        self.logger.info(
            "Property modified",
            property=descriptor.name,
            old_value=old_value,
            new_value=new_value,
        )

    def validate(self, context: ValidationContext) -> list[ValidationResult]:
        try:
            SampleStageOptions.model_validate({**self.config, **context.properties})
        except ValidationError as e:
            return [
                ValidationResult.invalid(".".join(str(part) for part in error["loc"]), error["msg"])
                for error in e.errors()
            ]
        return [ValidationResult.ok()]
