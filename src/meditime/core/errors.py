"""
Structured error types for meditime.

Every failure the scheduler can hit is one of a handful of kinds, and the
kind decides what happens next: startup errors end the process, per-firing
errors are logged and the scheduler keeps going. The hierarchy below makes
that decision explicit instead of leaving it to ``except Exception``.

Each MeditimeError carries:
- **Category:** what kind of error (storage, schedule, delivery, ...)
- **Retryable:** whether repeating the operation could succeed
- **Context:** the user, medication, device label or store key involved
- **Cause:** the chained underlying exception

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       MeditimeError                              │
        │          (category, retryable, context, cause)                   │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError        StoreError            ScheduleError          │
        │  (CONFIG)           (STORAGE)             (SCHEDULE)             │
        │      │                  │                     │                  │
        │  MissingConfig     DuplicateUser         ScheduleConfigError     │
        │                    UserNotFound                                  │
        │                    DuplicateDevice                               │
        │                                                                  │
        │  RecordValidationError     DispatchError                         │
        │  (VALIDATION)                   │                                │
        │                        ResolutionError  (RESOLUTION)             │
        │                        DeliveryError    (DELIVERY)               │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    - StoreError, ScheduleConfigError, ConfigError: fatal at startup
    - ResolutionError, DeliveryError: local to one firing, logged only

Examples:
    >>> error = ResolutionError("unknown device label").with_context(
    ...     user_id="u-1", medication_id="m-1", device_label="phone"
    ... )
    >>> error.context.device_label
    'phone'
    >>> error.to_dict()["category"]
    'RESOLUTION'

Tags:
    error-handling, exception-hierarchy, error-context, meditime
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification in logs."""

    # Startup / infrastructure
    CONFIG = "CONFIG"             # Missing or invalid settings
    STORAGE = "STORAGE"           # Record store read/write failures
    VALIDATION = "VALIDATION"     # Record constraints
    SCHEDULE = "SCHEDULE"         # Cron expression problems

    # Per-firing
    RESOLUTION = "RESOLUTION"     # Device label not found for a user
    DELIVERY = "DELIVERY"         # Push transport failures

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are serialized. Anything without a dedicated field
    goes into ``metadata``.
    """

    user_id: str | None = None
    user_name: str | None = None
    medication_id: str | None = None
    device_label: str | None = None
    key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields, flattening metadata into the result."""
        result: dict[str, Any] = {}
        for name in ("user_id", "user_name", "medication_id", "device_label", "key"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        result.update(self.metadata)
        return result


class MeditimeError(Exception):
    """
    Base exception for all meditime errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> error = MeditimeError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        Chaining:

        >>> try:
        ...     raise OSError("disk full")
        ... except OSError as e:
        ...     error = StoreError("write failed", cause=e)
        >>> error.cause
        OSError('disk full')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MeditimeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StoreError("decode failed").with_context(key="user:alice")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MeditimeError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StoreError(MeditimeError):
    """Reading or writing persisted records failed."""

    default_category = ErrorCategory.STORAGE


class DuplicateUserError(StoreError):
    """A user with this name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"user {name} already exists", category=ErrorCategory.VALIDATION)
        self.context.user_name = name


class UserNotFoundError(StoreError):
    """No user is stored under this name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"username {name} does not exist", category=ErrorCategory.VALIDATION)
        self.context.user_name = name


class DuplicateDeviceError(StoreError):
    """The user already has a device token under this label."""

    def __init__(self, name: str, label: str):
        self.name = name
        self.label = label
        super().__init__(
            f"device label {label} already exists for user {name}",
            category=ErrorCategory.VALIDATION,
        )
        self.context.user_name = name
        self.context.device_label = label


class RecordValidationError(MeditimeError):
    """A record violates a field constraint."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# SCHEDULE ERRORS
# =============================================================================


class ScheduleError(MeditimeError):
    """Scheduler error."""

    default_category = ErrorCategory.SCHEDULE


class ScheduleConfigError(ScheduleError):
    """A cron expression could not be parsed into a recurrence rule."""

    def __init__(self, expression: str, message: str | None = None, **kwargs: Any):
        self.expression = expression
        super().__init__(message or f"invalid cron expression {expression!r}", **kwargs)
        self.context.metadata.setdefault("expression", expression)


# =============================================================================
# DISPATCH ERRORS (per firing, never fatal)
# =============================================================================


class DispatchError(MeditimeError):
    """Failure local to a single firing."""

    default_category = ErrorCategory.DELIVERY


class ResolutionError(DispatchError):
    """A job references a device label absent from its user snapshot."""

    default_category = ErrorCategory.RESOLUTION


class DeliveryError(DispatchError):
    """The delivery transport did not accept a notification."""

    default_category = ErrorCategory.DELIVERY


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, MeditimeError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.DELIVERY
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MeditimeError",
    "ConfigError",
    "MissingConfigError",
    "StoreError",
    "DuplicateUserError",
    "UserNotFoundError",
    "DuplicateDeviceError",
    "RecordValidationError",
    "ScheduleError",
    "ScheduleConfigError",
    "DispatchError",
    "ResolutionError",
    "DeliveryError",
    "categorize_error",
]
