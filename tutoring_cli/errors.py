from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from tutoring_cli.models import Booking


class TutoringError(Exception):
    """Base class for every error raised by the tutoring centre core."""


class NotFound(TutoringError):
    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id!r} not found")


class ValidationError(TutoringError):
    pass


class BookingConflict(ValidationError):
    """Raised when a hall is already booked on an overlapping day, time and date range."""

    def __init__(self, conflicts: List["Booking"]):
        self.conflicts = conflicts
        codes = ", ".join(b.class_code or b.id for b in conflicts)
        super().__init__(f"Hall is already booked at this time by: {codes}")


class DuplicateRegistration(TutoringError):
    def __init__(self, student_id: str, booking_id: str):
        self.student_id = student_id
        self.booking_id = booking_id
        super().__init__(
            f"Student {student_id!r} is already registered in booking {booking_id!r}"
        )


class PermissionDenied(TutoringError):
    pass


class RequestAlreadyResolved(TutoringError):
    def __init__(self, request_id: str, status: Optional[str] = None):
        self.request_id = request_id
        self.status = status
        message = f"Change request {request_id!r} has already been resolved"
        if status:
            message += f" ({status})"
        super().__init__(message)


class PartialBatchFailure(TutoringError):
    """Raised on demand when some units of a compound operation failed.

    The full per-unit report stays available on ``report``.
    """

    def __init__(self, report: Any, failed: int, total: int):
        self.report = report
        self.failed = failed
        self.total = total
        super().__init__(f"{failed} of {total} operations failed")
