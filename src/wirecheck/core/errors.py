"""wirecheck error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Graph store
- 4xxx: Pipeline / analysis
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Graph store (3xxx)
    STORE_UNAVAILABLE = 3001
    STORE_REMAP_FAILED = 3002
    STORE_REPOSITORY_NOT_MAPPED = 3003

    # Pipeline (4xxx)
    PIPELINE_CHECKOUT_FAILED = 4001
    PIPELINE_PARSE_FAILED = 4002
    PIPELINE_TIMEOUT = 4003
    PIPELINE_CANCELLED = 4004
    PIPELINE_UNKNOWN_REPOSITORY = 4005

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True)
class WirecheckError(Exception):
    """Base error with structured context for JSON responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'STORE_UNAVAILABLE')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(WirecheckError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class StoreError(WirecheckError):
    """Call-graph store errors."""

    @classmethod
    def unavailable(cls, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=f"Graph store unavailable: {reason}",
            retryable=True,
            details={"reason": reason},
        )

    @classmethod
    def remap_failed(cls, repo: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_REMAP_FAILED,
            message=f"Re-map of '{repo}' aborted: {reason}",
            details={"repo": repo, "reason": reason},
        )

    @classmethod
    def repository_not_mapped(cls, repo: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_REPOSITORY_NOT_MAPPED,
            message=f"Repository '{repo}' has no published graph. Run a re-map first.",
            details={"repo": repo},
        )


class PipelineError(WirecheckError):
    """Change-analysis pipeline errors. Always reported as inconclusive."""

    @classmethod
    def checkout_failed(cls, ref: str, reason: str, retryable: bool = True) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_CHECKOUT_FAILED,
            message=f"Could not check out '{ref}': {reason}",
            retryable=retryable,
            details={"ref": ref, "reason": reason},
        )

    @classmethod
    def parse_failed(cls, path: str, reason: str) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_PARSE_FAILED,
            message=f"Could not parse tree at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def timeout(cls, seconds: float) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_TIMEOUT,
            message=f"Analysis exceeded {seconds:g}s",
            details={"timeout_sec": seconds},
        )

    @classmethod
    def cancelled(cls, unit: str) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_CANCELLED,
            message=f"Analysis of '{unit}' was superseded",
            details={"unit": unit},
        )

    @classmethod
    def unknown_repository(cls, repo: str) -> "PipelineError":
        return cls(
            code=ErrorCode.PIPELINE_UNKNOWN_REPOSITORY,
            message=f"Repository '{repo}' is not configured",
            details={"repo": repo},
        )


class InternalError(WirecheckError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
