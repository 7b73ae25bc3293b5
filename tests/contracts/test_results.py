"""Tests for StepResult invariants."""

import pytest

from flowstage.contracts import FlowError, StepResult


class TestStepResult:
    def test_success(self) -> None:
        result = StepResult.success(b"abc")
        assert result.ok
        assert result.status == "success"
        assert result.value == b"abc"
        assert result.error is None

    def test_success_allows_empty_value(self) -> None:
        assert StepResult.success(b"").ok

    def test_failure(self) -> None:
        error = FlowError("Failed to transform the flowfile")
        result: StepResult[bytes] = StepResult.failure(error)
        assert not result.ok
        assert result.error is error
        assert result.value is None

    def test_error_status_requires_error(self) -> None:
        with pytest.raises(ValueError, match="MUST provide a FlowError"):
            StepResult(status="error")

    def test_success_status_rejects_error(self) -> None:
        with pytest.raises(ValueError):
            StepResult(status="success", value=b"", error=FlowError("x"))
