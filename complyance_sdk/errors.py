"""
Error taxonomy for the Complyance SDK.

Provides:
- ErrorCode: stable numeric codes shared with the Unify API
- ErrorDetail: structured error payload (code, message, suggestion, context)
- SDKError and subclasses raised across the SDK
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorCode(int, Enum):
    """Numeric error codes."""
    UNKNOWN_ERROR = 1000
    MISSING_FIELD = 1001
    INVALID_FIELD = 1002
    VALIDATION_FAILED = 1003
    AUTHENTICATION_FAILED = 1004
    AUTHORIZATION_FAILED = 1005
    RATE_LIMIT_EXCEEDED = 1006
    QUOTA_EXCEEDED = 1007
    INVALID_SOURCE = 1008
    INVALID_COUNTRY = 1009
    INVALID_DOCUMENT_TYPE = 1010
    INVALID_PAYLOAD = 1011
    NETWORK_ERROR = 1012
    TIMEOUT_ERROR = 1013
    SERVER_ERROR = 1014
    SERVICE_UNAVAILABLE = 1015
    INVALID_ARGUMENT = 1016
    CONFIGURATION_ERROR = 1017
    QUEUE_ERROR = 1018
    RETRY_ERROR = 1019
    COUNTRY_NOT_SUPPORTED = 1020
    DOCUMENT_TYPE_NOT_SUPPORTED = 1021
    SOURCE_NOT_FOUND = 1022
    TEMPLATE_NOT_FOUND = 1023
    MAPPING_FAILED = 1024
    CONVERSION_FAILED = 1025
    SUBMISSION_FAILED = 1026
    VALIDATION_ENGINE_ERROR = 1027
    GOVERNMENT_API_ERROR = 1028
    ZATCA_VALIDATION_FAILED = 1029
    LHDN_VALIDATION_FAILED = 1030
    FTA_VALIDATION_FAILED = 1031
    IRAS_VALIDATION_FAILED = 1032
    API_ERROR = 1033
    CIRCUIT_BREAKER_OPEN = 1034
    PROCESSING_ERROR = 1035
    MAX_RETRIES_EXCEEDED = 1036
    INVALID_PAYLOAD_FORMAT = 1037

    @property
    def is_retryable(self) -> bool:
        return self in _RETRYABLE_CODES


_RETRYABLE_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT_ERROR,
    ErrorCode.SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.RATE_LIMIT_EXCEEDED,
    ErrorCode.QUEUE_ERROR,
    ErrorCode.RETRY_ERROR,
    ErrorCode.GOVERNMENT_API_ERROR,
})

# Codes that describe a request the caller must fix; retrying cannot help.
CLIENT_ERROR_CODES = frozenset({
    ErrorCode.MISSING_FIELD,
    ErrorCode.INVALID_FIELD,
    ErrorCode.VALIDATION_FAILED,
    ErrorCode.AUTHENTICATION_FAILED,
    ErrorCode.AUTHORIZATION_FAILED,
    ErrorCode.INVALID_PAYLOAD_FORMAT,
})


class ErrorDetail(BaseModel):
    """Structured description of a failure."""
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    message: str
    suggestion: Optional[str] = None
    field: Optional[str] = None
    retryable: bool = False
    retry_after_seconds: Optional[int] = None
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def http_status(self) -> Optional[int]:
        status = self.context.get("httpStatus")
        try:
            return int(status)
        except (TypeError, ValueError):
            return None

    def to_record(self) -> dict[str, Any]:
        """Compact form stored alongside queued submissions."""
        return {
            "code": self.code.value,
            "message": self.message,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
        }

    @classmethod
    def api_error(cls, message: str, http_status: Optional[int] = None, **context) -> "ErrorDetail":
        ctx = dict(context)
        if http_status is not None:
            ctx["httpStatus"] = http_status
        return cls(
            code=ErrorCode.API_ERROR,
            message=message,
            suggestion="Check the API response for details.",
            context=ctx,
        )

    @classmethod
    def network_error(cls, message: str) -> "ErrorDetail":
        return cls(
            code=ErrorCode.NETWORK_ERROR,
            message=message,
            suggestion="Check your network connection and try again.",
            retryable=True,
        )

    @classmethod
    def service_unavailable(cls, message: str = "Service temporarily unavailable") -> "ErrorDetail":
        return cls(
            code=ErrorCode.SERVICE_UNAVAILABLE,
            message=message,
            suggestion="The service is temporarily unavailable. Please try again later.",
            retryable=True,
        )

    @classmethod
    def max_retries_exceeded(cls, operation_name: str, attempts: int) -> "ErrorDetail":
        return cls(
            code=ErrorCode.MAX_RETRIES_EXCEEDED,
            message=f"Maximum retry attempts ({attempts}) exceeded for {operation_name}",
            suggestion="The operation failed after multiple retries. Check the service status.",
        )

    @classmethod
    def validation_error(cls, message: str, suggestion: Optional[str] = None,
                         field: Optional[str] = None) -> "ErrorDetail":
        return cls(
            code=ErrorCode.VALIDATION_FAILED,
            message=message,
            suggestion=suggestion,
            field=field,
        )

    @classmethod
    def missing_field(cls, field: str, message: str, suggestion: str) -> "ErrorDetail":
        return cls(
            code=ErrorCode.MISSING_FIELD,
            message=message,
            suggestion=suggestion,
            field=field,
        )

    @classmethod
    def queue_error(cls, message: str) -> "ErrorDetail":
        return cls(
            code=ErrorCode.QUEUE_ERROR,
            message=message,
            suggestion="Check that the queue directory exists, is writable and the disk is not full.",
        )


class SDKError(Exception):
    """Base exception carrying an ErrorDetail."""

    def __init__(self, detail: ErrorDetail):
        self.detail = detail
        super().__init__(detail.message)

    @property
    def code(self) -> ErrorCode:
        return self.detail.code

    @property
    def retryable(self) -> bool:
        return self.detail.retryable

    @property
    def http_status(self) -> Optional[int]:
        return self.detail.http_status

    @property
    def suggestion(self) -> Optional[str]:
        return self.detail.suggestion

    def __str__(self) -> str:
        text = f"[{self.detail.code.name}] {self.detail.message}"
        if self.detail.suggestion:
            text += f" (suggestion: {self.detail.suggestion})"
        return text


class ValidationError(SDKError):
    """Raised for input the caller must correct."""

    def __init__(self, message: str, suggestion: Optional[str] = None, field: Optional[str] = None):
        super().__init__(ErrorDetail.validation_error(message, suggestion, field))


class ConfigurationError(SDKError):
    """Raised when the SDK is missing or has invalid configuration."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(ErrorDetail(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=message,
            suggestion=suggestion,
        ))


class APIError(SDKError):
    """Raised for transport and HTTP-level failures talking to the Unify API."""


class QueuePersistenceError(SDKError):
    """Raised when a submission cannot be written to the local queue."""

    def __init__(self, message: str):
        super().__init__(ErrorDetail.queue_error(message))
