import functools
import sys
from datetime import date, datetime
from typing import Optional

import click
from sqlalchemy.orm import Session

from tutoring_cli.commands.approve.settlement_requests import (
    approve_request,
    list_requests,
    reject_request,
)
from tutoring_cli.commands.attend.attendance import (
    attendance_dates,
    booking_roll_call,
    mark_attendance,
)
from tutoring_cli.commands.booking.catalog import (
    BOOKING_STATUSES,
    apply_booking_fee,
    create_booking,
    delete_booking,
    effective_fee,
    list_live_for_month,
    set_booking_status,
    set_custom_fee,
    update_booking_schedule,
    update_fee,
)
from tutoring_cli.commands.create.reference import (
    create_academic_stage,
    create_hall,
    create_student,
    create_subject,
    create_teacher,
    create_user,
    get_student_by_serial,
)
from tutoring_cli.commands.enroll.fast_process import (
    FastRegistrationEntry,
    fast_process,
    fast_register,
)
from tutoring_cli.commands.enroll.registration import (
    delete_registration,
    register,
    student_registrations,
    update_registration_fee,
)
from tutoring_cli.commands.pay.payments import (
    PAYMENT_METHODS,
    derive_monthly_collection_status,
    list_payments,
    record_payment,
    remove_payment,
)
from tutoring_cli.commands.report.class_finance import (
    class_financial_report,
    count_outstanding,
    outstanding_registrations,
    report_totals,
)
from tutoring_cli.commands.settle.settlements import (
    EXPENSE_CATEGORIES,
    create_settlement,
    delete_settlement,
    list_settlements,
    request_delete,
    request_edit,
    update_settlement,
)
from tutoring_cli.commands.settle.summary import (
    get_daily_summary,
    monthly_financial_summary,
    teacher_contributions,
)
from tutoring_cli.commands.update.teacher_fee import apply_teacher_default_fee
from tutoring_cli.db.config import get_engine, get_session_factory, init_db
from tutoring_cli.db.queries import get_or_raise
from tutoring_cli.errors import TutoringError
from tutoring_cli.models import User
from tutoring_cli.utils.dates import WEEKDAYS
from tutoring_cli.utils.logging_config import configure_from_env, get_logger
from tutoring_cli.utils.permissions import can_moderate_settlement

logger = get_logger(__name__)

DATE = click.DateTime(formats=["%Y-%m-%d"])
TIME = click.DateTime(formats=["%H:%M"])


def get_db() -> Session:
    engine = get_engine()
    SessionLocal = get_session_factory(engine)
    return SessionLocal()


def handle_errors(func):
    """Report domain errors in red and exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TutoringError as e:
            logger.error(f"{func.__name__} failed: {e}")
            click.secho(str(e), fg="red")
            sys.exit(1)

    return wrapper


def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value else None


def _actor(db: Session, actor_id: str) -> User:
    return get_or_raise(db, User, actor_id)


def _parse_changes(pairs: tuple[str, ...]) -> dict:
    changes = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected FIELD=VALUE, got {pair!r}")
        name, value = pair.split("=", 1)
        changes[name.strip()] = value.strip()
    return changes


as_option = click.option(
    "--as", "actor_id", required=True, help="ID of the user performing the action"
)


@click.group()
def cli() -> None:
    configure_from_env()


@cli.group()
def db() -> None:
    pass


@db.command(name="init")
def db_init() -> None:
    """Create any missing tables."""
    init_db(get_engine())
    click.secho("Database tables created.", fg="green")


@cli.group()
def create() -> None:
    pass


@create.command(name="user")
@click.argument("name")
@click.option("--role", default="read_only", show_default=True)
@handle_errors
def create_user_cmd(name: str, role: str) -> None:
    user = create_user(get_db(), name, role)
    click.secho(f"Created user {user.name} ({user.role}): {user.id}", fg="green")


@create.command(name="hall")
@click.argument("name")
@click.option("--capacity", type=int, default=0)
@handle_errors
def create_hall_cmd(name: str, capacity: int) -> None:
    hall = create_hall(get_db(), name, capacity)
    click.secho(f"Created hall {hall.name}: {hall.id}", fg="green")


@create.command(name="teacher")
@click.argument("name")
@click.option("--code", help="Short teacher code used in class codes")
@click.option("--phone")
@click.option("--fee", help="Default class fee")
@handle_errors
def create_teacher_cmd(
    name: str, code: Optional[str], phone: Optional[str], fee: Optional[str]
) -> None:
    teacher = create_teacher(get_db(), name, code, phone, fee)
    click.secho(f"Created teacher {teacher.name}: {teacher.id}", fg="green")


@create.command(name="stage")
@click.argument("name")
@handle_errors
def create_stage_cmd(name: str) -> None:
    stage = create_academic_stage(get_db(), name)
    click.secho(f"Created academic stage {stage.name}: {stage.id}", fg="green")


@create.command(name="subject")
@click.argument("name")
@handle_errors
def create_subject_cmd(name: str) -> None:
    subject = create_subject(get_db(), name)
    click.secho(f"Created subject {subject.name}: {subject.id}", fg="green")


@cli.group()
def booking() -> None:
    pass


@booking.command(name="create")
@click.option("--hall", "hall_id", required=True)
@click.option("--teacher", "teacher_id", required=True)
@click.option("--stage", "stage_id", required=True)
@click.option(
    "--day", "days", multiple=True, required=True, type=click.Choice(WEEKDAYS)
)
@click.option("--start-time", type=TIME, required=True, help="HH:MM")
@click.option("--start-date", type=DATE, required=True)
@click.option("--end-date", type=DATE)
@click.option("--fee", help="Leave out to use the teacher's default fee")
@click.option("--duration", type=int, help="Class length in minutes")
@handle_errors
def booking_create(
    hall_id, teacher_id, stage_id, days, start_time, start_date, end_date, fee, duration
) -> None:
    """Schedule a recurring class in a hall."""
    booking = create_booking(
        get_db(),
        hall_id,
        teacher_id,
        stage_id,
        days,
        start_time.time(),
        start_date.date(),
        _as_date(end_date),
        fee=fee,
        duration_minutes=duration,
    )
    click.secho(f"Created booking {booking.class_code}: {booking.id}", fg="green")


@booking.command(name="reschedule")
@click.argument("booking_id")
@click.option("--hall", "hall_id")
@click.option("--day", "days", multiple=True, type=click.Choice(WEEKDAYS))
@click.option("--start-time", type=TIME)
@click.option("--duration", type=int)
@click.option("--start-date", type=DATE)
@click.option("--end-date", type=DATE)
@handle_errors
def booking_reschedule(
    booking_id, hall_id, days, start_time, duration, start_date, end_date
) -> None:
    kwargs = {}
    if end_date:
        kwargs["end_date"] = end_date.date()
    booking = update_booking_schedule(
        get_db(),
        booking_id,
        hall_id=hall_id,
        days=days or None,
        start_time=start_time.time() if start_time else None,
        duration_minutes=duration,
        start_date=_as_date(start_date),
        **kwargs,
    )
    click.secho(f"Rescheduled booking {booking.class_code}", fg="green")


@booking.command(name="fee")
@click.argument("booking_id")
@click.argument("fee")
@click.option("--custom", is_flag=True, help="Keep this fee when the teacher's fee changes")
@click.option("--apply", "apply_now", is_flag=True, help="Also update registrations")
@handle_errors
def booking_fee(booking_id: str, fee: str, custom: bool, apply_now: bool) -> None:
    db = get_db()
    if custom:
        booking = set_custom_fee(db, booking_id, fee)
    else:
        booking = update_fee(db, booking_id, fee)
    click.secho(f"Booking {booking.id} fee is now {booking.fee}", fg="green")
    if apply_now:
        count = apply_booking_fee(db, booking_id)
        click.echo(f"Updated {count} registrations")


@booking.command(name="status")
@click.argument("booking_id")
@click.argument("status", type=click.Choice(BOOKING_STATUSES))
@handle_errors
def booking_status(booking_id: str, status: str) -> None:
    booking = set_booking_status(get_db(), booking_id, status)
    click.secho(f"Booking {booking.id} is {booking.status}", fg="green")


@booking.command(name="list")
@click.option("--month", type=int, default=lambda: date.today().month)
@click.option("--year", type=int, default=lambda: date.today().year)
@click.option("--hall", "hall_id")
@click.option("--teacher", "teacher_id")
@handle_errors
def booking_list(month: int, year: int, hall_id, teacher_id) -> None:
    """List bookings running in a month with their student counts."""
    rows = list_live_for_month(get_db(), month, year, hall_id, teacher_id)
    if not rows:
        click.secho("No bookings found.", fg="yellow")
        return
    for booking, count in rows:
        click.echo(
            f"{booking.id}  {booking.class_code}  {booking.hall.name}  "
            f"{booking.teacher.name}  {', '.join(booking.days_of_week)} "
            f"{booking.start_time:%H:%M}  fee {effective_fee(booking)}  "
            f"{count} students"
        )


@booking.command(name="delete")
@click.argument("booking_id")
@click.confirmation_option(
    prompt="This deletes the booking with all registrations, payments and attendance. Continue?"
)
@handle_errors
def booking_delete(booking_id: str) -> None:
    removed = delete_booking(get_db(), booking_id)
    click.secho(
        f"Deleted booking {booking_id} ({removed['registrations']} registrations, "
        f"{removed['payments']} payments, {removed['attendance']} attendance records)",
        fg="green",
    )


@cli.group()
def student() -> None:
    pass


@student.command(name="add")
@click.argument("serial_number")
@click.argument("name")
@click.argument("mobile_phone")
@click.option("--parent-phone")
@click.option("--city")
@handle_errors
def student_add(serial_number, name, mobile_phone, parent_phone, city) -> None:
    new_student = create_student(
        get_db(), serial_number, name, mobile_phone, parent_phone, city
    )
    click.secho(f"Created student {new_student.name}: {new_student.id}", fg="green")


@student.command(name="show")
@click.argument("serial_number")
@handle_errors
def student_show(serial_number: str) -> None:
    db = get_db()
    found = get_student_by_serial(db, serial_number)
    click.secho(f"{found.serial_number}  {found.name}  {found.mobile_phone}", bold=True)
    for registration in student_registrations(db, found.id):
        click.echo(
            f"  {registration.id}  {registration.booking.class_code}  "
            f"{registration.paid_amount}/{registration.total_fees}  "
            f"{registration.payment_status}"
        )


@student.command(name="fast")
@click.argument("serial_number")
@click.option("--date", "on_date", type=DATE, help="Defaults to today")
@click.option("--as", "actor_id", help="ID of the user at the desk")
@handle_errors
def student_fast(serial_number: str, on_date, actor_id: Optional[str]) -> None:
    """Mark attendance and collect this month's fee for today's classes."""
    db = get_db()
    found = get_student_by_serial(db, serial_number)
    report = fast_process(db, found.id, _as_date(on_date), created_by=actor_id)

    if not report.outcomes:
        click.secho("No classes today for this student.", fg="yellow")
        return
    for outcome in report.outcomes:
        color = "green" if outcome.succeeded else "red"
        payment = (
            f"paid {outcome.payment_amount}"
            if outcome.payment_id
            else outcome.payment_error or outcome.payment_skipped_reason
        )
        attendance = "present" if outcome.attendance_marked else outcome.attendance_error
        click.secho(
            f"{outcome.registration_id}: {attendance}; {payment}", fg=color
        )
    click.secho(report.summary(), bold=True)


@student.command(name="fast-register")
@click.argument("serial_number")
@click.argument("booking_ids", nargs=-1, required=True)
@click.option("--paid", help="Up-front payment taken for each booking")
@click.option("--as", "actor_id", help="ID of the user at the desk")
@handle_errors
def student_fast_register(
    serial_number: str, booking_ids, paid: Optional[str], actor_id: Optional[str]
) -> None:
    db = get_db()
    found = get_student_by_serial(db, serial_number)
    entries = [FastRegistrationEntry(booking_id=b, paid_amount=paid) for b in booking_ids]
    for outcome in fast_register(db, found.id, entries, created_by=actor_id):
        if outcome.succeeded:
            click.secho(
                f"{outcome.booking_id}: registered {outcome.registration_id}", fg="green"
            )
        else:
            click.secho(f"{outcome.booking_id}: {outcome.error}", fg="red")


@cli.group()
def enroll() -> None:
    pass


@enroll.command(name="add")
@click.argument("serial_number")
@click.argument("booking_id")
@click.option("--fee", help="Individual fee; defaults to the booking fee")
@click.option("--notes")
@click.option("--as", "actor_id")
@handle_errors
def enroll_add(serial_number, booking_id, fee, notes, actor_id) -> None:
    db = get_db()
    found = get_student_by_serial(db, serial_number)
    registration = register(
        db, found.id, booking_id, total_fees=fee, notes=notes, created_by=actor_id
    )
    click.secho(
        f"Registered {found.name} for {registration.total_fees}: {registration.id}",
        fg="green",
    )


@enroll.command(name="fee")
@click.argument("registration_id")
@click.argument("fee")
@handle_errors
def enroll_fee(registration_id: str, fee: str) -> None:
    registration = update_registration_fee(get_db(), registration_id, fee)
    click.secho(
        f"Registration {registration.id} fee {registration.total_fees} "
        f"({registration.payment_status})",
        fg="green",
    )


@enroll.command(name="remove")
@click.argument("registration_id")
@click.confirmation_option(prompt="Remove the registration with its payments and attendance?")
@handle_errors
def enroll_remove(registration_id: str) -> None:
    delete_registration(get_db(), registration_id)
    click.secho(f"Removed registration {registration_id}", fg="green")


@cli.group()
def pay() -> None:
    pass


@pay.command(name="record")
@click.argument("registration_id")
@click.argument("amount")
@click.option("--date", "payment_date", type=DATE)
@click.option("--method", type=click.Choice(PAYMENT_METHODS), default="cash")
@click.option("--reference")
@click.option("--notes")
@click.option("--as", "actor_id")
@handle_errors
def pay_record(
    registration_id, amount, payment_date, method, reference, notes, actor_id
) -> None:
    db = get_db()
    payment = record_payment(
        db,
        registration_id,
        amount,
        payment_date=_as_date(payment_date),
        payment_method=method,
        notes=notes,
        reference_number=reference,
        created_by=actor_id,
    )
    registration = payment.registration
    click.secho(
        f"Recorded {payment.amount}: {registration.paid_amount}/{registration.total_fees} "
        f"({registration.payment_status})",
        fg="green",
    )


@pay.command(name="remove")
@click.argument("payment_id")
@handle_errors
def pay_remove(payment_id: str) -> None:
    registration = remove_payment(get_db(), payment_id)
    click.secho(
        f"Removed payment; {registration.paid_amount}/{registration.total_fees} "
        f"({registration.payment_status})",
        fg="green",
    )


@pay.command(name="list")
@click.argument("registration_id")
@click.option("--month", type=int, default=lambda: date.today().month)
@click.option("--year", type=int, default=lambda: date.today().year)
@handle_errors
def pay_list(registration_id: str, month: int, year: int) -> None:
    db = get_db()
    status = derive_monthly_collection_status(db, registration_id, month, year)
    for payment in list_payments(db, registration_id):
        click.echo(
            f"{payment.payment_date}  {payment.amount}  {payment.payment_method}  "
            f"{payment.reference_number or ''}"
        )
    label = "paid" if status.paid_this_month else "not paid"
    click.secho(f"{month:02d}/{year}: {label} ({status.amount})", bold=True)


@cli.group()
def attend() -> None:
    pass


@attend.command(name="mark")
@click.argument("registration_id")
@click.option("--date", "on_date", type=DATE)
@click.option("--as", "actor_id")
@handle_errors
def attend_mark(registration_id: str, on_date, actor_id: Optional[str]) -> None:
    record = mark_attendance(
        get_db(), registration_id, _as_date(on_date), created_by=actor_id
    )
    click.secho(f"Present on {record.attendance_date}", fg="green")


@attend.command(name="history")
@click.argument("registration_id")
@handle_errors
def attend_history(registration_id: str) -> None:
    for day in attendance_dates(get_db(), registration_id):
        click.echo(day.isoformat())


@attend.command(name="roll")
@click.argument("booking_id")
@click.option("--date", "on_date", type=DATE)
@handle_errors
def attend_roll(booking_id: str, on_date) -> None:
    day = _as_date(on_date) or date.today()
    for registration, present in booking_roll_call(get_db(), booking_id, day):
        click.secho(
            f"{registration.student.name}: {'present' if present else 'absent'}",
            fg="green" if present else "red",
        )


@cli.group()
def fees() -> None:
    pass


@fees.command(name="cascade")
@click.argument("teacher_id")
@click.argument("fee")
@click.argument("booking_ids", nargs=-1, required=True)
@click.option(
    "--current-month",
    is_flag=True,
    help="Also update fees on registrations without an individual fee",
)
@handle_errors
def fees_cascade(teacher_id: str, fee: str, booking_ids, current_month: bool) -> None:
    """Set a teacher's default fee and apply it to the given bookings."""
    result = apply_teacher_default_fee(
        get_db(), teacher_id, fee, list(booking_ids), current_month
    )
    for booking_id, previous in result.previous_fees.items():
        click.echo(f"{booking_id}: {previous} -> {result.new_fee}")
    for booking_id in result.skipped_custom:
        click.secho(f"{booking_id}: custom fee kept", fg="yellow")
    for booking_id in result.pinned:
        click.echo(f"{booking_id}: kept at its previous fee")
    click.secho(
        f"Updated {len(result.previous_fees)} bookings and "
        f"{result.registrations_updated} registrations",
        fg="green",
    )


@cli.group()
def settle() -> None:
    pass


@settle.command(name="income")
@as_option
@click.argument("amount")
@click.option("--date", "on_date", type=DATE, help="Defaults to today")
@click.option("--teacher", "teacher_id", help="Teacher paying in")
@click.option("--source", "source_name", help="Source name for non-teacher income")
@click.option("--subject", "subject_id")
@click.option("--notes")
@handle_errors
def settle_income(actor_id, amount, on_date, teacher_id, source_name, subject_id, notes):
    db = get_db()
    settlement = create_settlement(
        db,
        _actor(db, actor_id),
        _as_date(on_date) or date.today(),
        "income",
        amount,
        source_type="teacher" if teacher_id else "other",
        source_id=teacher_id,
        source_name=source_name,
        subject_id=subject_id,
        notes=notes,
    )
    click.secho(f"Recorded income {settlement.amount}: {settlement.id}", fg="green")


@settle.command(name="expense")
@as_option
@click.argument("amount")
@click.argument("category", type=click.Choice(EXPENSE_CATEGORIES))
@click.option("--date", "on_date", type=DATE, help="Defaults to today")
@click.option("--name", "source_name", help="Description shown instead of the category")
@click.option("--notes")
@handle_errors
def settle_expense(actor_id, amount, category, on_date, source_name, notes):
    db = get_db()
    settlement = create_settlement(
        db,
        _actor(db, actor_id),
        _as_date(on_date) or date.today(),
        "expense",
        amount,
        category=category,
        source_name=source_name,
        notes=notes,
    )
    click.secho(f"Recorded expense {settlement.amount}: {settlement.id}", fg="green")


@settle.command(name="edit")
@as_option
@click.argument("settlement_id")
@click.argument("changes", nargs=-1, required=True)
@click.option("--reason", help="Reason given when filing a request")
@handle_errors
def settle_edit(actor_id, settlement_id, changes, reason):
    """Edit a settlement (FIELD=VALUE ...), or request the edit if not a manager."""
    db = get_db()
    actor = _actor(db, actor_id)
    parsed = _parse_changes(changes)
    if can_moderate_settlement(actor.role):
        update_settlement(db, actor, settlement_id, parsed)
        click.secho(f"Updated settlement {settlement_id}", fg="green")
    else:
        request = request_edit(db, actor, settlement_id, parsed, reason)
        click.secho(f"Edit request {request.id} sent for approval", fg="yellow")


@settle.command(name="delete")
@as_option
@click.argument("settlement_id")
@click.option("--reason", help="Reason given when filing a request")
@handle_errors
def settle_delete(actor_id, settlement_id, reason):
    """Delete a settlement, or request the deletion if not a manager."""
    db = get_db()
    actor = _actor(db, actor_id)
    if can_moderate_settlement(actor.role):
        delete_settlement(db, actor, settlement_id)
        click.secho(f"Deleted settlement {settlement_id}", fg="green")
    else:
        request = request_delete(db, actor, settlement_id, reason)
        click.secho(f"Delete request {request.id} sent for approval", fg="yellow")


@settle.command(name="list")
@click.option("--date", "on_date", type=DATE, help="Defaults to today")
@click.option("--to", "end_date", type=DATE)
@click.option("--by", "created_by", help="Only entries recorded by this user")
@handle_errors
def settle_list(on_date, end_date, created_by) -> None:
    start = _as_date(on_date) or date.today()
    for entry in list_settlements(get_db(), start, _as_date(end_date), created_by):
        badge = f" [{entry.status.replace('_', ' ')}]" if entry.is_pending else ""
        click.secho(
            f"{entry.settlement_date}  {entry.type:<7}  {entry.amount:>10}  "
            f"{entry.source_name}{badge}",
            fg="green" if entry.type == "income" else "red",
        )


@settle.command(name="summary")
@click.option("--date", "on_date", type=DATE, help="Defaults to today")
@handle_errors
def settle_summary(on_date) -> None:
    summary = get_daily_summary(get_db(), _as_date(on_date) or date.today())
    click.echo(f"Income:   {summary.total_income} ({summary.income_count})")
    click.echo(f"Expenses: {summary.total_expenses} ({summary.expense_count})")
    click.secho(
        f"Net:      {summary.net_amount}",
        fg="green" if summary.net_amount >= 0 else "red",
        bold=True,
    )


@settle.command(name="contributions")
@click.option("--from", "start_date", type=DATE)
@click.option("--to", "end_date", type=DATE)
@handle_errors
def settle_contributions(start_date, end_date) -> None:
    rows = teacher_contributions(get_db(), _as_date(start_date), _as_date(end_date))
    if not rows:
        click.secho("No teacher income recorded.", fg="yellow")
        return
    for row in rows:
        click.echo(f"{row.teacher_name:<30} {row.total_amount:>10} ({row.entry_count})")


@settle.command(name="monthly")
@click.option("--month", type=int, default=lambda: date.today().month)
@click.option("--year", type=int, default=lambda: date.today().year)
@handle_errors
def settle_monthly(month: int, year: int) -> None:
    summary = monthly_financial_summary(get_db(), month, year)
    click.echo(
        f"Student payments: {summary.payments_collected} ({summary.payment_count})"
    )
    click.echo(f"Settlement income: {summary.settlement_income}")
    click.echo(f"Settlement expenses: {summary.settlement_expenses}")
    click.secho(f"Settlement net: {summary.net_settlement}", bold=True)


@cli.group(name="report")
def reports() -> None:
    pass


@reports.command(name="classes")
@click.option("--teacher", "teacher_id")
@click.option("--hall", "hall_id")
@handle_errors
def report_classes(teacher_id, hall_id) -> None:
    """Fees expected, collected and outstanding per class."""
    classes = class_financial_report(get_db(), teacher_id, hall_id)
    if not classes:
        click.secho("No registrations found.", fg="yellow")
        return
    for c in classes:
        click.echo(
            f"{c.class_code or c.booking_id}  {c.hall_name}  {c.teacher_name}  "
            f"{c.student_count} students  expected {c.expected}  collected {c.collected}  "
            f"outstanding {c.outstanding}  ({c.collection_rate}%)  "
            f"paid {c.paid_count} / partial {c.partial_count} / pending {c.pending_count}"
        )
    totals = report_totals(classes)
    click.secho(
        f"Total: expected {totals.expected}, collected {totals.collected}, "
        f"outstanding {totals.outstanding} ({totals.collection_rate}%)",
        bold=True,
    )


@reports.command(name="outstanding")
@click.option("--limit", type=int, default=10, show_default=True)
@handle_errors
def report_outstanding(limit: int) -> None:
    """Registrations that still owe money, newest first."""
    db = get_db()
    registrations = outstanding_registrations(db, limit)
    if not registrations:
        click.secho("Nothing outstanding.", fg="green")
        return
    for registration in registrations:
        balance = registration.total_fees - registration.paid_amount
        click.echo(
            f"{registration.id}  {registration.student.serial_number}  "
            f"{registration.student.name}  {registration.booking.class_code}  "
            f"{registration.payment_status:<7}  owes {balance}"
        )
    click.secho(f"{count_outstanding(db)} registrations owing in total", bold=True)


@cli.group()
def approve() -> None:
    pass


@approve.command(name="list")
@click.option("--date", "on_date", type=DATE)
@click.option("--by", "requested_by")
@handle_errors
def approve_list(on_date, requested_by) -> None:
    requests = list_requests(get_db(), _as_date(on_date), requested_by)
    if not requests:
        click.secho("No pending requests.", fg="yellow")
        return
    for request in requests:
        click.echo(
            f"{request.id}  {request.request_type:<6}  {request.settlement.source_name}  "
            f"{request.settlement.amount}  by {request.requester.name}: {request.reason or ''}"
        )


@approve.command(name="accept")
@as_option
@click.argument("request_id")
@handle_errors
def approve_accept(actor_id: str, request_id: str) -> None:
    db = get_db()
    request = approve_request(db, _actor(db, actor_id), request_id)
    click.secho(f"Approved {request.request_type} request {request.id}", fg="green")


@approve.command(name="reject")
@as_option
@click.argument("request_id")
@handle_errors
def approve_reject(actor_id: str, request_id: str) -> None:
    db = get_db()
    request = reject_request(db, _actor(db, actor_id), request_id)
    click.secho(f"Rejected {request.request_type} request {request.id}", fg="green")


if __name__ == "__main__":
    cli()
