"""
Exception hierarchy for the Zen session client.

This module defines structured exceptions carrying Connect status codes,
context information and severity, so that failures raised anywhere in the
client can be classified (recovered vs. reported) in a single place.
"""

import json
from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class StatusCode(Enum):
    """Connect RPC status codes."""

    CANCELED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    @property
    def wire_name(self) -> str:
        """Name used for this code in Connect error bodies."""
        if self is StatusCode.CANCELED:
            return "canceled"
        return self.name.lower()

    @classmethod
    def from_wire(cls, name: Optional[str]) -> Optional["StatusCode"]:
        """Parse a Connect wire name, returning None for unknown names."""
        if not name:
            return None
        for code in cls:
            if code.wire_name == name:
                return code
        return None

    @classmethod
    def from_http_status(cls, status: int) -> "StatusCode":
        """Derive a code from an HTTP status when the body is not a Connect error."""
        mapping = {
            400: cls.INTERNAL,
            401: cls.UNAUTHENTICATED,
            403: cls.PERMISSION_DENIED,
            404: cls.UNIMPLEMENTED,
            429: cls.UNAVAILABLE,
            502: cls.UNAVAILABLE,
            503: cls.UNAVAILABLE,
            504: cls.UNAVAILABLE,
        }
        return mapping.get(status, cls.UNKNOWN)


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ZenError(Exception):
    """
    Base exception class for all Zen session client errors.

    Provides structured error information including the status code,
    severity and context for consistent logging and reporting.
    """

    def __init__(
        self,
        message: str,
        code: StatusCode = StatusCode.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)

        self.message = message
        self.code = code
        self.severity = severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now()

        if cause:
            self.context['cause_type'] = type(cause).__name__
            self.context['cause_message'] = str(cause)

    @property
    def name(self) -> str:
        """Error name as shown to users."""
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for serialization."""
        return {
            'error': {
                'name': self.name,
                'code': self.code.wire_name,
                'message': self.message,
                'severity': self.severity.value,
                'timestamp': self.timestamp.isoformat(),
                'context': self.context,
                'cause': {
                    'type': self.context.get('cause_type'),
                    'message': self.context.get('cause_message')
                } if self.cause else None
            }
        }

    def get_http_status_code(self) -> int:
        """Get the HTTP status code Connect associates with this error's code."""
        code_mapping = {
            StatusCode.CANCELED: 499,
            StatusCode.UNKNOWN: 500,
            StatusCode.INVALID_ARGUMENT: 400,
            StatusCode.DEADLINE_EXCEEDED: 504,
            StatusCode.NOT_FOUND: 404,
            StatusCode.ALREADY_EXISTS: 409,
            StatusCode.PERMISSION_DENIED: 403,
            StatusCode.RESOURCE_EXHAUSTED: 429,
            StatusCode.FAILED_PRECONDITION: 400,
            StatusCode.ABORTED: 409,
            StatusCode.OUT_OF_RANGE: 400,
            StatusCode.UNIMPLEMENTED: 501,
            StatusCode.INTERNAL: 500,
            StatusCode.UNAVAILABLE: 503,
            StatusCode.DATA_LOSS: 500,
            StatusCode.UNAUTHENTICATED: 401,
        }
        return code_mapping.get(self.code, 500)


class ConnectError(ZenError):
    """
    Error returned by (or on the way to) a Connect RPC service.

    ``message`` is the display form ``[code] raw message``; ``raw_message``
    holds the server-provided text.
    """

    def __init__(
        self,
        message: str,
        code: StatusCode = StatusCode.UNKNOWN,
        details: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, str]] = None,
        **kwargs
    ):
        self.raw_message = message
        self.details = details or []
        self.metadata = metadata or {}

        severity = kwargs.pop('severity', None)
        if severity is None:
            severity = ErrorSeverity.HIGH if code == StatusCode.UNAUTHENTICATED else ErrorSeverity.MEDIUM

        display = f"[{code.wire_name}] {message}" if message else f"[{code.wire_name}]"
        super().__init__(message=display, code=code, severity=severity, **kwargs)

    @property
    def name(self) -> str:
        return "ConnectError"

    def is_unauthenticated(self) -> bool:
        """Check whether the server rejected the supplied token/credential."""
        return self.code == StatusCode.UNAUTHENTICATED

    @classmethod
    def from_exception(cls, exception: BaseException) -> "ConnectError":
        """
        Normalise any exception into a ConnectError.

        ConnectErrors are returned unchanged. Other ZenErrors keep their code;
        everything else is wrapped with code UNKNOWN. The wrapped exception is
        kept as the cause.
        """
        if isinstance(exception, ConnectError):
            return exception
        if isinstance(exception, ZenError):
            return cls(exception.message, exception.code, cause=exception)
        return cls(str(exception) or type(exception).__name__, StatusCode.UNKNOWN, cause=exception)

    @classmethod
    def from_response_body(cls, status: int, body: bytes, metadata: Optional[Dict[str, str]] = None) -> "ConnectError":
        """
        Build an error from a non-200 Connect unary response.

        Args:
            status: HTTP status code of the response
            body: Raw response body
            metadata: Response headers

        Returns:
            ConnectError carrying the code from the body, or one derived from
            the HTTP status when the body is not a Connect error
        """
        fallback = StatusCode.from_http_status(status)
        try:
            payload = json.loads(body.decode('utf-8')) if body else None
        except (UnicodeDecodeError, json.JSONDecodeError):
            payload = None

        if isinstance(payload, dict):
            code = StatusCode.from_wire(payload.get('code')) or fallback
            message = payload.get('message') or ''
            details = payload.get('details') or []
            return cls(message, code, details=details, metadata=metadata,
                       context={'http_status': status})

        text = body.decode('utf-8', errors='replace').strip() if body else ''
        return cls(text or f"HTTP {status}", fallback, metadata=metadata,
                   context={'http_status': status})


class TokenStorageError(ZenError):
    """Failure reading or writing the persisted token store."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            code=kwargs.pop('code', StatusCode.UNKNOWN),
            severity=kwargs.pop('severity', ErrorSeverity.HIGH),
            **kwargs
        )


class ConfigurationError(ZenError):
    """Configuration related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key

        super().__init__(
            message=message,
            code=StatusCode.INVALID_ARGUMENT,
            severity=ErrorSeverity.HIGH,
            context=context,
            **kwargs
        )


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_code: StatusCode = StatusCode.UNKNOWN
) -> ZenError:
    """
    Convert a generic exception to a structured ZenError.

    Args:
        exception: The original exception
        context: Additional context information
        default_code: StatusCode used when no specific mapping exists

    Returns:
        Structured ZenError
    """
    if isinstance(exception, ZenError):
        if context:
            exception.context.update(context)
        return exception

    exception_mapping = {
        ConnectionError: StatusCode.UNAVAILABLE,
        TimeoutError: StatusCode.DEADLINE_EXCEEDED,
        PermissionError: StatusCode.PERMISSION_DENIED,
        FileNotFoundError: StatusCode.NOT_FOUND,
        ValueError: StatusCode.INVALID_ARGUMENT,
    }

    code = exception_mapping.get(type(exception), default_code)

    return ZenError(
        message=str(exception),
        code=code,
        context=context,
        cause=exception
    )
