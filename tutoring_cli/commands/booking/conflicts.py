from datetime import date, time
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from tutoring_cli.models import Booking


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def time_windows_overlap(
    start_a: time, duration_a: int, start_b: time, duration_b: int
) -> bool:
    """Half-open [start, start + duration) windows; back-to-back classes do not clash."""
    a_start = _minutes(start_a)
    b_start = _minutes(start_b)
    return a_start < b_start + duration_b and b_start < a_start + duration_a


def date_ranges_overlap(
    start_a: date, end_a: Optional[date], start_b: date, end_b: Optional[date]
) -> bool:
    """Inclusive date ranges; a missing end date means the range never ends."""
    return (end_b is None or start_a <= end_b) and (end_a is None or start_b <= end_a)


def find_conflicts(
    db: Session,
    hall_id: str,
    days: Iterable[str],
    start_time: time,
    duration_minutes: int,
    start_date: date,
    end_date: Optional[date] = None,
    exclude_booking_id: Optional[str] = None,
) -> List[Booking]:
    """
    Find active bookings in the same hall that share a weekday, overlap in
    time of day and overlap in date range with the proposed slot.

    The hall, status and date-range filters run in SQL; the weekday and
    time-window checks run on the remaining rows.
    """
    query = db.query(Booking).filter(
        Booking.hall_id == hall_id,
        Booking.status == "active",
        or_(Booking.end_date.is_(None), Booking.end_date >= start_date),
    )
    if end_date is not None:
        query = query.filter(Booking.start_date <= end_date)
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)

    wanted_days = set(days)
    return [
        booking
        for booking in query.order_by(Booking.start_time).all()
        if wanted_days & set(booking.days_of_week)
        and time_windows_overlap(
            start_time, duration_minutes, booking.start_time, booking.duration_minutes
        )
    ]
