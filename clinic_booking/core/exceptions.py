"""Custom application exceptions."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes returned to API callers."""

    INTERNAL_ERROR = "E000"
    BAD_REQUEST = "E001"
    INSUFFICIENT_CAPACITY = "E003"
    DUPLICATE_DAILY_BOOKING = "E004"
    BLACKLISTED = "E005"
    ACCOUNT_LOCKED = "E006"
    NOT_FOUND = "E007"
    INVALID_STATUS = "E008"
    TOO_LATE_TO_MODIFY = "E011"
    PAST_DATE = "E013"
    DATE_TOO_FAR = "E014"
    TREATMENT_NOT_OFFERED = "E015"
    FORBIDDEN = "E016"
    UNAUTHORIZED = "E017"
    CONFLICT = "E018"


class AppException(Exception):
    """Base application exception."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: ErrorCode | None = None,
        extra: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and error code."""
        self.message = message
        self.status_code = status_code
        if code is not None:
            self.code = code
        self.extra = extra or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    code = ErrorCode.FORBIDDEN

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class AccountLockedException(AppException):
    """The acting account has been locked."""

    code = ErrorCode.ACCOUNT_LOCKED

    def __init__(self, message: str = "Account is locked"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Bad request exception."""

    code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    code = ErrorCode.CONFLICT

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


# Booking errors


class InsufficientCapacityException(AppException):
    """The time slot does not have enough remaining minutes."""

    code = ErrorCode.INSUFFICIENT_CAPACITY

    def __init__(
        self,
        message: str = "Time slot is full",
        alternative_slots: list[dict[str, Any]] | None = None,
    ):
        """Initialize with 400 status code and alternative slot suggestions."""
        super().__init__(
            message,
            status_code=400,
            extra={"alternativeSlots": alternative_slots or []},
        )

    @property
    def alternative_slots(self) -> list[dict[str, Any]]:
        """Alternative slots suggested to the caller."""
        return self.extra["alternativeSlots"]

    @alternative_slots.setter
    def alternative_slots(self, value: list[dict[str, Any]]) -> None:
        self.extra["alternativeSlots"] = value


class DuplicateDailyBookingException(AppException):
    """The patient already holds an active appointment that day."""

    code = ErrorCode.DUPLICATE_DAILY_BOOKING

    def __init__(self, message: str = "Only one appointment per day is allowed"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class BlacklistedException(AppException):
    """The patient is blacklisted and cannot book."""

    code = ErrorCode.BLACKLISTED

    def __init__(
        self,
        message: str = "Your account is suspended from booking, please contact the clinic",
    ):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class PastDateException(AppException):
    """The requested appointment date is in the past."""

    code = ErrorCode.PAST_DATE

    def __init__(self, message: str = "Appointment date cannot be in the past"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class DateTooFarException(AppException):
    """The requested appointment date is beyond the booking window."""

    code = ErrorCode.DATE_TOO_FAR

    def __init__(self, message: str = "Appointment date is too far in the future"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class TreatmentNotOfferedException(AppException):
    """The doctor does not offer the requested treatment type."""

    code = ErrorCode.TREATMENT_NOT_OFFERED

    def __init__(self, message: str = "Doctor does not offer this treatment"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class NotModifiableException(AppException):
    """Only booked appointments can be modified."""

    code = ErrorCode.INVALID_STATUS

    def __init__(self, message: str = "Only booked appointments can be modified"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class TooLateToModifyException(AppException):
    """The slot starts too soon for the appointment to be modified."""

    code = ErrorCode.TOO_LATE_TO_MODIFY

    def __init__(
        self,
        message: str = "Appointments cannot be modified within 3 hours of the slot start",
    ):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class InvalidTransitionException(AppException):
    """Requested status change is not allowed by the appointment lifecycle."""

    code = ErrorCode.INVALID_STATUS

    def __init__(self, message: str = "Invalid status transition"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class CapacityAdjustmentException(AppException):
    """Manual capacity adjustment rejected by ledger policy."""

    code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str = "Capacity adjustment not allowed"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)
