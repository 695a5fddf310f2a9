"""
Custom exceptions for nswot.

Every failure that crosses a module boundary is one of these. Provider
transports and vendor payloads are normalised here so callers only branch
on the error kind, never on vendor-specific exception types.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""

    LLM_AUTH_FAILED = "LLM_AUTH_FAILED"
    ANTHROPIC_AUTH_FAILED = "ANTHROPIC_AUTH_FAILED"
    OPENAI_AUTH_FAILED = "OPENAI_AUTH_FAILED"
    LLM_RATE_LIMITED = "LLM_RATE_LIMITED"
    ANTHROPIC_RATE_LIMITED = "ANTHROPIC_RATE_LIMITED"
    OPENAI_RATE_LIMITED = "OPENAI_RATE_LIMITED"
    LLM_REQUEST_FAILED = "LLM_REQUEST_FAILED"
    LLM_REQUEST_CANCELLED = "LLM_REQUEST_CANCELLED"
    LLM_EMPTY_RESPONSE = "LLM_EMPTY_RESPONSE"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    LLM_PARSE_ERROR = "LLM_PARSE_ERROR"
    LLM_EVIDENCE_INVALID = "LLM_EVIDENCE_INVALID"
    CONFIG_ERROR = "CONFIG_ERROR"
    SETTINGS_KEY_MISSING = "SETTINGS_KEY_MISSING"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class NswotError(Exception):
    """Base exception for all nswot errors."""

    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @property
    def status_code(self) -> Optional[int]:
        return None

    @property
    def is_transient(self) -> bool:
        """Whether a manual retry could plausibly succeed."""
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for display: kind, message and optional HTTP status."""
        payload: Dict[str, Any] = {
            "kind": self.code.value,
            "message": self.message,
        }
        if self.status_code is not None:
            payload["status"] = self.status_code
        return payload


class ConfigurationError(NswotError):
    """Raised when there are configuration issues."""

    default_code = ErrorCode.CONFIG_ERROR


class PipelineError(NswotError):
    """Raised when a pipeline step is composed or fed incorrectly."""

    default_code = ErrorCode.INTERNAL_ERROR


class ProviderError(NswotError):
    """Base class for failures talking to an LLM vendor."""

    default_code = ErrorCode.LLM_REQUEST_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, code=code, **kwargs)
        self._status_code = status_code
        self.retry_after = retry_after
        self.provider = provider

    @property
    def status_code(self) -> Optional[int]:
        return self._status_code

    @property
    def is_transient(self) -> bool:
        status = self._status_code
        return status is not None and (status == 429 or status >= 500)


class AuthenticationError(ProviderError):
    """Vendor rejected the credential (401/403)."""

    default_code = ErrorCode.LLM_AUTH_FAILED


class RateLimitError(ProviderError):
    """Vendor rate limited the request (429)."""

    default_code = ErrorCode.LLM_RATE_LIMITED

    @property
    def is_transient(self) -> bool:
        return True


class LLMRequestError(ProviderError):
    """Any other HTTP failure, transport failure or in-band stream error."""

    default_code = ErrorCode.LLM_REQUEST_FAILED

    def __init__(self, message: str, network: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.network = network

    @property
    def is_transient(self) -> bool:
        return self.network or super().is_transient


class RequestCancelledError(ProviderError):
    """The caller aborted an in-flight stream."""

    default_code = ErrorCode.LLM_REQUEST_CANCELLED


class EmptyResponseError(ProviderError):
    """The stream ended without text, thinking or tool calls."""

    default_code = ErrorCode.LLM_EMPTY_RESPONSE

    @property
    def is_transient(self) -> bool:
        return True


class CircuitOpenError(NswotError):
    """Circuit breaker is open, preventing calls."""

    default_code = ErrorCode.CIRCUIT_OPEN

    @property
    def is_transient(self) -> bool:
        return True


class LLMParseError(NswotError):
    """Model output failed schema validation."""

    default_code = ErrorCode.LLM_PARSE_ERROR

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path


class EvidenceInvalidError(LLMParseError):
    """A claim arrived with zero evidence entries."""

    default_code = ErrorCode.LLM_EVIDENCE_INVALID
