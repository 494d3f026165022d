"""Tests for error types and codes."""

from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from wirecheck.core.errors import (
    ConfigError,
    ErrorCode,
    InternalError,
    PipelineError,
    StoreError,
    WirecheckError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000),
            (ErrorCode.STORE_UNAVAILABLE, 3000),
            (ErrorCode.STORE_REPOSITORY_NOT_MAPPED, 3000),
            (ErrorCode.PIPELINE_CHECKOUT_FAILED, 4000),
            (ErrorCode.PIPELINE_TIMEOUT, 4000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(
        self, code: ErrorCode, expected_range: int
    ) -> None:
        """Error codes fall within their designated numeric range."""
        # Given
        error_code = code

        # When
        value = error_code.value

        # Then
        assert expected_range <= value < expected_range + 1000


class TestWirecheckError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = WirecheckError(
            code=ErrorCode.STORE_UNAVAILABLE,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 3001,
            "error": "STORE_UNAVAILABLE",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_human_readable(self) -> None:
        """Error string representation is human readable."""
        error = WirecheckError(code=ErrorCode.INTERNAL_ERROR, message="Something broke")
        assert str(error) == "[9001] INTERNAL_ERROR: Something broke"

    def test_error_is_raisable(self) -> None:
        """Errors are real exceptions and carry their code when caught."""
        with pytest.raises(WirecheckError) as exc_info:
            raise PipelineError.timeout(5)
        assert exc_info.value.code is ErrorCode.PIPELINE_TIMEOUT

    def test_error_propagates_through_context_managers(self) -> None:
        """contextlib rewrites __traceback__ on re-raise; the error survives it."""

        @contextmanager
        def scope() -> Iterator[None]:
            yield

        with pytest.raises(StoreError) as exc_info, scope():
            raise StoreError.repository_not_mapped("acme")
        assert exc_info.value.code is ErrorCode.STORE_REPOSITORY_NOT_MAPPED
        assert exc_info.value.__traceback__ is not None


class TestFactories:
    """Factory classmethods set codes and retryability."""

    def test_config_invalid_value(self) -> None:
        """Invalid config values name the field."""
        error = ConfigError.invalid_value("server.port", 70000, "out of range")
        assert error.code is ErrorCode.CONFIG_INVALID_VALUE
        assert error.details["field"] == "server.port"
        assert not error.retryable

    def test_store_unavailable_is_retryable(self) -> None:
        """Lock contention is transient."""
        assert StoreError.unavailable("database is locked").retryable

    def test_remap_failed_is_not_retryable(self) -> None:
        """A failed write is reported, not retried blindly."""
        error = StoreError.remap_failed("acme", "disk full")
        assert not error.retryable
        assert "acme" in error.message

    def test_repository_not_mapped(self) -> None:
        """Unmapped repositories point at the fix."""
        error = StoreError.repository_not_mapped("acme")
        assert error.code is ErrorCode.STORE_REPOSITORY_NOT_MAPPED
        assert "re-map" in error.message

    @pytest.mark.parametrize("retryable", [True, False])
    def test_checkout_failed_retryability_is_explicit(self, retryable: bool) -> None:
        """Network failures retry, missing refs do not."""
        error = PipelineError.checkout_failed("pr-1", "boom", retryable=retryable)
        assert error.retryable is retryable
        assert error.details == {"ref": "pr-1", "reason": "boom"}

    def test_timeout_formats_seconds(self) -> None:
        """Timeout message shows the limit compactly."""
        assert PipelineError.timeout(600.0).message == "Analysis exceeded 600s"

    def test_cancelled_names_unit(self) -> None:
        """Superseded analyses name their unit."""
        assert PipelineError.cancelled("acme#pr-1").details["unit"] == "acme#pr-1"

    def test_internal_unexpected_keeps_details(self) -> None:
        """Unexpected failures keep their context."""
        error = InternalError.unexpected("bug", stage="parsed")
        assert error.details == {"stage": "parsed"}
