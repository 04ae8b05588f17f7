from datetime import time
from decimal import Decimal

from tutoring_cli.commands.create.reference import create_hall
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.commands.pay.payments import record_payment
from tutoring_cli.commands.report.class_finance import (
    class_financial_report,
    count_outstanding,
    outstanding_registrations,
    report_totals,
)


def _enrolled(db, booking, make_student, payments):
    registrations = []
    for amount in payments:
        registration = register(db, make_student().id, booking.id)
        if amount:
            record_payment(db, registration.id, amount)
        registrations.append(registration)
    return registrations


def test_class_financial_report(db, make_booking, make_student):
    afternoon = make_booking(start_time=time(16, 0))
    evening = make_booking(start_time=time(18, 0), fee="300")
    make_booking(start_time=time(10, 0))
    _enrolled(db, afternoon, make_student, ["200", "50", None])
    _enrolled(db, evening, make_student, ["100"])

    first, second = class_financial_report(db)

    assert first.booking_id == afternoon.id
    assert first.class_code == "T07-WE-1600"
    assert first.hall_name == "Hall A"
    assert first.teacher_name == "Mona Adel"
    assert first.student_count == 3
    assert first.expected == Decimal("600.00")
    assert first.collected == Decimal("250.00")
    assert first.outstanding == Decimal("350.00")
    assert (first.paid_count, first.partial_count, first.pending_count) == (1, 1, 1)
    assert first.collection_rate == Decimal("41.7")

    assert second.booking_id == evening.id
    assert second.collection_rate == Decimal("33.3")

    totals = report_totals([first, second])
    assert totals.student_count == 4
    assert totals.expected == Decimal("900.00")
    assert totals.outstanding == Decimal("550.00")
    assert totals.collection_rate == Decimal("38.9")


def test_report_filters_and_empty_totals(db, teacher, make_booking, make_student):
    booking = make_booking()
    _enrolled(db, booking, make_student, [None])
    empty_hall = create_hall(db, "Hall B")

    assert [c.booking_id for c in class_financial_report(db, teacher_id=teacher.id)] == [
        booking.id
    ]
    assert class_financial_report(db, hall_id=empty_hall.id) == []

    totals = report_totals([])
    assert totals.outstanding == Decimal("0.00")
    assert totals.collection_rate == Decimal("0.0")


def test_outstanding_registrations(db, make_booking, make_student):
    booking = make_booking()
    paid, partial, pending = _enrolled(db, booking, make_student, ["200", "50", None])

    owing = outstanding_registrations(db)

    assert {r.id for r in owing} == {partial.id, pending.id}
    assert paid.id not in {r.id for r in owing}
    assert count_outstanding(db) == 2
    assert len(outstanding_registrations(db, limit=1)) == 1
