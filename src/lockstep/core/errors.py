"""Error taxonomy and classification.

Call boundaries translate whatever went wrong into one of a small closed
set of :class:`ErrorKind` values.  Retry decisions dispatch on the kind
rather than on message text.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    """Closed classification of failures seen at a call boundary."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    VALIDATION = "validation"
    CREDENTIAL = "credential"
    UNKNOWN = "unknown"


class ErrorSeverity(enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


TRANSIENT_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_ERROR,
    }
)

# Backend error codes known to clear up on their own.
TRANSIENT_CODES: dict[str, ErrorKind] = {
    "NETWORK_ERROR": ErrorKind.NETWORK,
    "ECONNRESET": ErrorKind.NETWORK,
    "ECONNREFUSED": ErrorKind.NETWORK,
    "ETIMEDOUT": ErrorKind.TIMEOUT,
    "auth/network-request-failed": ErrorKind.NETWORK,
    "auth/too-many-requests": ErrorKind.RATE_LIMITED,
    "over_request_rate_limit": ErrorKind.RATE_LIMITED,
}

CREDENTIAL_CODES = frozenset(
    {
        "auth/wrong-password",
        "auth/user-not-found",
        "auth/invalid-credential",
        "invalid_credentials",
        "invalid_grant",
    }
)

VALIDATION_CODES = frozenset(
    {
        "auth/invalid-email",
        "auth/weak-password",
        "auth/email-already-in-use",
        "validation_failed",
    }
)


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------


class LockStepError(Exception):
    """Base class for errors raised by the engine itself."""


class ClassifiedError(LockStepError):
    """A failure already tagged with its :class:`ErrorKind`.

    Raise this from call boundaries (HTTP clients, database adapters,
    auth backends) so retry policies never have to inspect messages.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        *,
        status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.code = code


class CooldownActiveError(LockStepError):
    """Raised when an operation key is still inside its cooldown window."""

    def __init__(self, operation_key: str, remaining_ms: int) -> None:
        super().__init__(
            f"Operation '{operation_key}' is cooling down for another "
            f"{format_cooldown(remaining_ms)}"
        )
        self.operation_key = operation_key
        self.remaining_ms = remaining_ms


class AccountLockedError(LockStepError):
    """Raised by the engine facade when an account is locked out."""

    def __init__(self, identifier: str, remaining_ms: int, level: int) -> None:
        super().__init__(
            f"Account locked (level {level}) for another {format_cooldown(remaining_ms)}"
        )
        self.identifier = identifier
        self.remaining_ms = remaining_ms
        self.level = level


class RetryCancelledError(LockStepError):
    """The caller abandoned a retry loop while it was waiting."""


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


def kind_for_status(status: int) -> ErrorKind:
    """Map an HTTP status code to an :class:`ErrorKind`."""
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 408:
        return ErrorKind.TIMEOUT
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    if status == 401:
        return ErrorKind.CREDENTIAL
    if 400 <= status < 500:
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def kind_for_code(code: str) -> ErrorKind:
    """Map a backend-specific error code to an :class:`ErrorKind`."""
    if code in TRANSIENT_CODES:
        return TRANSIENT_CODES[code]
    if code in CREDENTIAL_CODES:
        return ErrorKind.CREDENTIAL
    if code in VALIDATION_CODES:
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` for *error*.

    Anything not recognised is :attr:`ErrorKind.UNKNOWN`, which the
    default retry predicate treats as fatal.
    """
    if isinstance(error, ClassifiedError):
        return error.kind

    # httpx.TimeoutException is a TransportError, so check it first.
    if isinstance(error, httpx.TimeoutException | TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(error, httpx.TransportError | ConnectionError):
        return ErrorKind.NETWORK
    if isinstance(error, httpx.HTTPStatusError):
        return kind_for_status(error.response.status_code)

    code = getattr(error, "code", None)
    if isinstance(code, str):
        kind = kind_for_code(code)
        if kind is not ErrorKind.UNKNOWN:
            return kind

    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if isinstance(status, int):
        return kind_for_status(status)

    return ErrorKind.UNKNOWN


def is_retryable_error(error: BaseException) -> bool:
    """Default retry predicate: only transient failures are retried."""
    return classify_error(error) in TRANSIENT_KINDS


def is_credential_error(error: BaseException) -> bool:
    return classify_error(error) is ErrorKind.CREDENTIAL


# ------------------------------------------------------------------
# Reporting
# ------------------------------------------------------------------

_SEVERITY: dict[ErrorKind, ErrorSeverity] = {
    ErrorKind.NETWORK: ErrorSeverity.WARNING,
    ErrorKind.TIMEOUT: ErrorSeverity.WARNING,
    ErrorKind.RATE_LIMITED: ErrorSeverity.WARNING,
    ErrorKind.SERVER_ERROR: ErrorSeverity.ERROR,
    ErrorKind.VALIDATION: ErrorSeverity.INFO,
    ErrorKind.CREDENTIAL: ErrorSeverity.WARNING,
    ErrorKind.UNKNOWN: ErrorSeverity.ERROR,
}

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK: (
        "Unable to connect to the server. Please check your internet "
        "connection and try again."
    ),
    ErrorKind.TIMEOUT: "The server took too long to respond. Please try again.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorKind.SERVER_ERROR: "The server encountered an error. Please try again later.",
    ErrorKind.CREDENTIAL: "Invalid email or password.",
}

_SUGGESTED_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Check your internet connection and try again.",
    ErrorKind.TIMEOUT: "Please try again in a moment.",
    ErrorKind.RATE_LIMITED: "Please wait a moment before trying again.",
    ErrorKind.SERVER_ERROR: (
        "Please try again later or contact support if the problem persists."
    ),
    ErrorKind.VALIDATION: "Please review the information you provided and try again.",
    ErrorKind.CREDENTIAL: "Please check your credentials and try again.",
}


@dataclass(frozen=True)
class ErrorReport:
    """A display- and log-friendly summary of a failure."""

    kind: ErrorKind
    severity: ErrorSeverity
    message: str
    user_message: str
    suggested_action: str | None
    retryable: bool
    code: str | None = None
    status: int | None = None


def describe_error(error: BaseException) -> ErrorReport:
    """Build an :class:`ErrorReport` for *error*."""
    kind = classify_error(error)
    message = str(error) or type(error).__name__
    code = getattr(error, "code", None)
    status = getattr(error, "status", None)
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    return ErrorReport(
        kind=kind,
        severity=_SEVERITY[kind],
        message=message,
        user_message=_USER_MESSAGES.get(kind, message),
        suggested_action=_SUGGESTED_ACTIONS.get(kind),
        retryable=kind in TRANSIENT_KINDS,
        code=code if isinstance(code, str) else None,
        status=status if isinstance(status, int) else None,
    )


_LOG_LEVELS: dict[ErrorSeverity, int] = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
}


def log_error(report: ErrorReport, **context: Any) -> None:
    """Log *report* at the level matching its severity."""
    logger.log(
        _LOG_LEVELS[report.severity],
        "[%s] %s",
        report.kind.value,
        report.message,
        extra={"error_kind": report.kind.value, "error_code": report.code, **context},
    )


def format_cooldown(ms: int) -> str:
    """Render a duration as e.g. ``"2 hours 5 minutes"`` or ``"30 seconds"``."""
    if ms <= 0:
        return "0 seconds"

    seconds = ms // 1000
    days, seconds = divmod(seconds, 86_400)
    hours, seconds = divmod(seconds, 3_600)
    minutes, seconds = divmod(seconds, 60)

    def _unit(value: int, name: str) -> str:
        return f"{value} {name}{'' if value == 1 else 's'}"

    if days:
        return _unit(days, "day") + (f" {_unit(hours, 'hour')}" if hours else "")
    if hours:
        return _unit(hours, "hour") + (f" {_unit(minutes, 'minute')}" if minutes else "")
    if minutes:
        return _unit(minutes, "minute")
    return _unit(max(seconds, 1), "second")
