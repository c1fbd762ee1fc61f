"""
Custom exceptions for the Seatkeeper booking core.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the platform."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Seat state conflicts
    SEAT_NOT_AVAILABLE = "SEAT_NOT_AVAILABLE"
    SEAT_HOLD_INVALID = "SEAT_HOLD_INVALID"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"

    # Infrastructure errors
    DATABASE_ERROR = "DATABASE_ERROR"


class SeatkeeperError(Exception):
    """Base exception class for the booking core."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        return result

    def response_fields(self) -> Dict[str, Any]:
        """Top-level fields merged into the HTTP error body."""
        return {}


class ValidationError(SeatkeeperError):
    """Missing or malformed input. Raised before any store access."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field_errors": field_errors} if field_errors else details,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(SeatkeeperError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class ShowNotFoundError(NotFoundError):
    """Raised when a show has no initialized seat map."""

    def __init__(self, show_id: str, **kwargs):
        super().__init__(
            f"Show {show_id} not found",
            resource_type="show",
            resource_id=show_id,
            suggestions=["Check the show ID", "Initialize the show's seat map first"],
            **kwargs
        )


class SeatNotFoundError(NotFoundError):
    """Raised when one or more referenced seats do not exist."""

    def __init__(self, seat_ids: List[str], **kwargs):
        super().__init__(
            f"Seats not found: {', '.join(seat_ids)}",
            resource_type="seat",
            resource_id=",".join(seat_ids),
            **kwargs
        )
        self.missing_seat_ids = list(seat_ids)

    def response_fields(self) -> Dict[str, Any]:
        return {"missingSeatIds": self.missing_seat_ids}


class ConflictError(SeatkeeperError):
    """Base exception for seat-state conflicts. Always names the offending seats."""
    pass


class SeatHoldConflictError(ConflictError):
    """Raised when only part of a hold request could be reserved."""

    def __init__(
        self,
        reserved_seats: List[Dict[str, Any]],
        failed_seats: List[Dict[str, Any]],
        total_requested: int,
        **kwargs
    ):
        super().__init__(
            "Some seats are no longer available",
            error_code=ErrorCode.SEAT_NOT_AVAILABLE,
            details={"failed_seat_ids": [seat["id"] for seat in failed_seats]},
            suggestions=["Choose different seats", "Release the partial hold or confirm the reserved subset"],
            **kwargs
        )
        self.reserved_seats = reserved_seats
        self.failed_seats = failed_seats
        self.total_requested = total_requested

    def response_fields(self) -> Dict[str, Any]:
        return {
            "reservedSeats": self.reserved_seats,
            "failedSeats": self.failed_seats,
            "totalRequested": self.total_requested,
            "totalReserved": len(self.reserved_seats),
        }


class BookingConflictError(ConflictError):
    """Raised when any seat in a confirm request is not validly held by the caller."""

    def __init__(self, invalid_seats: List[Dict[str, Any]], **kwargs):
        super().__init__(
            "Some seats are no longer available or not reserved by you",
            error_code=ErrorCode.SEAT_HOLD_INVALID,
            details={"invalid_seat_ids": [seat["id"] for seat in invalid_seats]},
            suggestions=["Hold the seats again", "Refresh seat availability"],
            **kwargs
        )
        self.invalid_seats = invalid_seats

    def response_fields(self) -> Dict[str, Any]:
        return {"invalidSeats": self.invalid_seats}


class ConcurrencyError(ConflictError):
    """Raised when a concurrent writer changed a seat between validation and write."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.CONCURRENCY_CONFLICT,
            suggestions=["Refresh seat availability", "Hold the seats again"],
            **kwargs
        )


class InternalError(SeatkeeperError):
    """Storage or transaction failure unrelated to seat state. Never retried here."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.DATABASE_ERROR,
            suggestions=["Try the whole operation again later"],
            **kwargs
        )
