"""Typed error taxonomy and fault classification.

Every fault raised while tracking a vesting schedule is converted into one of a
small set of :class:`VestingTrackerError` subclasses. Each carries:

- ``code``: machine-readable :class:`ErrorCode`;
- ``is_retryable``: whether a retry could plausibly succeed;
- ``user_friendly_message`` and ``actionable_guidance``: text for the caller's
  UI.

:func:`classify` maps arbitrary exceptions (``urllib`` errors, JSON decode
failures, pydantic validation errors, ...) onto this taxonomy;
:func:`to_user_facing` reduces any typed error to the
``(title, message, actionable, can_retry)`` tuple a UI renders.
"""

from __future__ import annotations

import json
import urllib.error
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import NamedTuple

from pydantic import ValidationError as PydanticValidationError

RETRYABLE_HTTP_STATUSES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    DATA_PROCESSING_ERROR = "DATA_PROCESSING_ERROR"
    PARTIAL_DATA_ERROR = "PARTIAL_DATA_ERROR"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    # Policy whitelist vocabulary only; no error class emits these codes.
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"


class OperationKind(StrEnum):
    TRANSACTION_FETCH = "transaction_fetch"
    PRICE_FETCH = "price_fetch"
    ANNOTATION = "annotation"


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Where a fault happened; used for classification and log lines."""

    operation: OperationKind
    step: str
    address: str | None = None
    retry_attempt: int | None = None
    max_retries: int | None = None
    timestamp: str = field(default_factory=_utc_now_iso)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class VestingTrackerError(Exception):
    """Base class for all typed errors raised by ``vesting_tracker``."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        is_retryable: bool = False,
        user_friendly_message: str | None = None,
        actionable_guidance: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.is_retryable = is_retryable
        self.user_friendly_message = user_friendly_message
        self.actionable_guidance = actionable_guidance

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code.value!r}, "
            f"retryable={self.is_retryable}, message={self.message!r})"
        )


class ValidationError(VestingTrackerError):
    """Malformed address, date or amount input. Never retryable."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(
            message,
            code=ErrorCode.VALIDATION_ERROR,
            is_retryable=False,
            user_friendly_message=f"Invalid {field or 'input'}: {message}",
            actionable_guidance=(
                f"Please correct the {field} and try again."
                if field
                else "Please correct the input and try again."
            ),
        )


class NetworkError(VestingTrackerError):
    """Transport failure or non-2xx HTTP status.

    Retryable when ``status`` is one of :data:`RETRYABLE_HTTP_STATUSES` or when
    no status is known (assumed transient).
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        retryable = status is None or status in RETRYABLE_HTTP_STATUSES
        super().__init__(
            message,
            code=ErrorCode.NETWORK_ERROR,
            is_retryable=retryable,
            user_friendly_message="Network connection failed",
            actionable_guidance=(
                "Please check your internet connection and try again."
                if retryable
                else "Please try again later."
            ),
        )


class DataProcessingError(VestingTrackerError):
    """Malformed upstream data or an internal computation fault. Never retryable."""

    def __init__(self, message: str, step: str = "data") -> None:
        self.step = step
        super().__init__(
            message,
            code=ErrorCode.DATA_PROCESSING_ERROR,
            is_retryable=False,
            user_friendly_message=f"Error processing {step}",
            actionable_guidance=(
                f"There was an issue processing your {step}. "
                "Please verify your inputs and try again."
            ),
        )


class PartialDataError(VestingTrackerError):
    """A non-essential enrichment failed while the essential data succeeded."""

    def __init__(self, message: str, available: str, missing: str) -> None:
        self.available = available
        self.missing = missing
        super().__init__(
            message,
            code=ErrorCode.PARTIAL_DATA_ERROR,
            is_retryable=True,
            user_friendly_message=f"Some data could not be retrieved: {missing}",
            actionable_guidance=(
                f"We were able to retrieve {available}, but {missing} is currently "
                "unavailable. You can continue with partial data or try again later."
            ),
        )


class RequestCancelledError(VestingTrackerError):
    """The caller cancelled the operation. Not a failure; never retried."""

    def __init__(self, message: str = "Request was cancelled") -> None:
        super().__init__(
            message,
            code=ErrorCode.REQUEST_CANCELLED,
            is_retryable=False,
            user_friendly_message="Search cancelled",
            actionable_guidance="The search was cancelled. Please try again.",
        )


class UnknownError(VestingTrackerError):
    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            message,
            code=ErrorCode.UNKNOWN_ERROR,
            is_retryable=False,
            user_friendly_message="Something went wrong",
            actionable_guidance="Please try again. If the problem persists, contact support.",
        )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _is_timeout_reason(reason: object) -> bool:
    return isinstance(reason, TimeoutError) or "timed out" in str(reason).lower()


def classify(fault: object, context: ErrorContext) -> VestingTrackerError:
    """Convert any raised fault into a typed :class:`VestingTrackerError`.

    Order matters: ``HTTPError`` is a ``URLError`` which is an ``OSError``;
    ``JSONDecodeError`` and pydantic's ``ValidationError`` are ``ValueError``
    subclasses.
    """

    if isinstance(fault, VestingTrackerError):
        return fault

    if isinstance(fault, urllib.error.HTTPError):
        status = int(fault.code)
        if status >= 500:
            return NetworkError(
                f"Blockchain API is temporarily unavailable (HTTP {status})", status
            )
        if status == 429:
            return NetworkError("Rate limit exceeded for blockchain API", 429)
        return NetworkError(f"HTTP {status}: {fault.reason}", status)

    if isinstance(fault, urllib.error.URLError):
        if _is_timeout_reason(fault.reason):
            return NetworkError("Request timed out", 408)
        return NetworkError(f"Unable to connect to external services: {fault.reason}")

    if isinstance(fault, TimeoutError):
        return NetworkError("Request timed out", 408)

    if isinstance(fault, OSError):
        return NetworkError(f"Network error: {fault}")

    if isinstance(fault, json.JSONDecodeError | PydanticValidationError):
        return DataProcessingError("Invalid response format received", context.step)

    if isinstance(fault, ValueError | TypeError):
        text = str(fault)
        lowered = text.lower()
        if "invalid" in lowered or "required" in lowered:
            return ValidationError(text)
        return DataProcessingError(text, context.step)

    if isinstance(fault, Exception):
        return DataProcessingError(str(fault) or type(fault).__name__, context.step)

    return UnknownError()


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


class UserFacingError(NamedTuple):
    title: str
    message: str
    actionable: str
    can_retry: bool


def to_user_facing(error: VestingTrackerError) -> UserFacingError:
    """Reduce a typed error to what a UI renders.

    A retry affordance is only offered when a retry can help; validation
    mistakes never get one.
    """

    guidance = error.actionable_guidance or "Please try again."
    match error.code:
        case ErrorCode.VALIDATION_ERROR:
            return UserFacingError(
                "Invalid Input",
                error.user_friendly_message or "Please check your input",
                guidance,
                False,
            )
        case ErrorCode.NETWORK_ERROR:
            return UserFacingError(
                "Connection Error",
                error.user_friendly_message or "Unable to connect to external services",
                (
                    "Please check your internet connection and try again."
                    if error.is_retryable
                    else "The service may be temporarily unavailable. Please try again later."
                ),
                error.is_retryable,
            )
        case ErrorCode.DATA_PROCESSING_ERROR:
            return UserFacingError(
                "Processing Error",
                error.user_friendly_message or "Error processing your data",
                guidance,
                False,
            )
        case ErrorCode.PARTIAL_DATA_ERROR:
            return UserFacingError(
                "Partial Results",
                error.user_friendly_message or "Some data could not be retrieved",
                error.actionable_guidance or "You can continue with partial data or try again.",
                True,
            )
        case ErrorCode.REQUEST_CANCELLED:
            return UserFacingError(
                "Search Cancelled",
                "The search was cancelled",
                "Start a new search when ready.",
                False,
            )
        case _:
            return UserFacingError(
                "Error",
                error.user_friendly_message or "Something went wrong",
                "Please try again. If the problem persists, contact support.",
                error.is_retryable,
            )


def is_service_unavailable(error: VestingTrackerError) -> bool:
    return isinstance(error, NetworkError) and error.status in {502, 503, 504}


def is_user_input_error(error: VestingTrackerError) -> bool:
    return error.code is ErrorCode.VALIDATION_ERROR


def validation_field(error: VestingTrackerError) -> str | None:
    """Map a validation error to the tracker input it concerns, if any."""

    if not isinstance(error, ValidationError):
        return None
    text = f"{error.field or ''} {error.message}".lower()
    if "address" in text:
        return "address"
    if "date" in text:
        return "vesting_start_date"
    if "amount" in text:
        return "annual_grant_btc"
    return None


__all__ = [
    "RETRYABLE_HTTP_STATUSES",
    "ErrorCode",
    "OperationKind",
    "ErrorContext",
    "VestingTrackerError",
    "ValidationError",
    "NetworkError",
    "DataProcessingError",
    "PartialDataError",
    "RequestCancelledError",
    "UnknownError",
    "classify",
    "UserFacingError",
    "to_user_facing",
    "is_service_unavailable",
    "is_user_input_error",
    "validation_field",
]
