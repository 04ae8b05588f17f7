from datetime import date, datetime, time
from decimal import Decimal
from typing import Literal, Optional

from nanoid import generate
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# Ids are passed as command line arguments, so they must never start with "-"
ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


def new_id() -> str:
    return generate(ID_ALPHABET, 21)


def now_timestamp() -> int:
    return int(datetime.now().timestamp())


def _money() -> Numeric:
    return Numeric(10, 2, asdecimal=True)


UserRole = Literal["owner", "manager", "space_manager", "read_only", "teacher", "admin"]


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[UserRole] = mapped_column(String, nullable=False, default="read_only")
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} name={self.name!r} role={self.role!r}>"


class Hall(Base):
    __tablename__ = "halls"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    bookings: Mapped[list["Booking"]] = relationship(back_populates="hall")

    def __repr__(self) -> str:
        return f"<Hall id={self.id!r} name={self.name!r} capacity={self.capacity!r}>"


class Teacher(Base):
    __tablename__ = "teachers"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    teacher_code: Mapped[Optional[str]] = mapped_column(String, unique=True)
    mobile_phone: Mapped[Optional[str]] = mapped_column(String)
    default_class_fee: Mapped[Optional[Decimal]] = mapped_column(_money())
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    bookings: Mapped[list["Booking"]] = relationship(back_populates="teacher")

    def __repr__(self) -> str:
        return (
            f"<Teacher id={self.id!r} name={self.name!r} "
            f"default_class_fee={self.default_class_fee!r}>"
        )


class AcademicStage(Base):
    __tablename__ = "academic_stages"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    def __repr__(self) -> str:
        return f"<AcademicStage id={self.id!r} name={self.name!r}>"


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    def __repr__(self) -> str:
        return f"<Subject id={self.id!r} name={self.name!r}>"


class Student(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    serial_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    mobile_phone: Mapped[str] = mapped_column(String, nullable=False)
    parent_phone: Mapped[Optional[str]] = mapped_column(String)
    city: Mapped[Optional[str]] = mapped_column(String)
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    registrations: Mapped[list["StudentRegistration"]] = relationship(
        back_populates="student", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id!r} serial_number={self.serial_number!r} name={self.name!r}>"


BookingStatus = Literal["active", "cancelled", "completed"]
Weekday = Literal[
    "sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"
]


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    hall_id: Mapped[str] = mapped_column(
        ForeignKey("halls.id", ondelete="cascade"), nullable=False
    )
    teacher_id: Mapped[str] = mapped_column(
        ForeignKey("teachers.id", ondelete="cascade"), nullable=False
    )
    academic_stage_id: Mapped[str] = mapped_column(
        ForeignKey("academic_stages.id"), nullable=False
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    days_of_week: Mapped[list[Weekday]] = mapped_column(JSON, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    fee: Mapped[Optional[Decimal]] = mapped_column(_money())
    is_custom_fee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[BookingStatus] = mapped_column(
        String, nullable=False, default="active"
    )
    class_code: Mapped[Optional[str]] = mapped_column(String)
    created_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="set null")
    )
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    hall: Mapped["Hall"] = relationship(back_populates="bookings")
    teacher: Mapped["Teacher"] = relationship(back_populates="bookings")
    academic_stage: Mapped["AcademicStage"] = relationship()
    registrations: Mapped[list["StudentRegistration"]] = relationship(
        back_populates="booking", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("bookings_hall_status_idx", "hall_id", "status"),
        Index("bookings_teacher_idx", "teacher_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id!r} hall_id={self.hall_id!r} teacher_id={self.teacher_id!r} "
            f"days_of_week={self.days_of_week!r} start_time={self.start_time!r} "
            f"status={self.status!r}>"
        )


PaymentStatus = Literal["pending", "partial", "paid"]


class StudentRegistration(Base):
    __tablename__ = "student_registrations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    student_id: Mapped[str] = mapped_column(
        ForeignKey("students.id", ondelete="cascade"), nullable=False
    )
    booking_id: Mapped[str] = mapped_column(
        ForeignKey("bookings.id", ondelete="cascade"), nullable=False
    )
    total_fees: Mapped[Decimal] = mapped_column(
        _money(), nullable=False, default=Decimal("0")
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        _money(), nullable=False, default=Decimal("0")
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String, nullable=False, default="pending"
    )
    fee_overridden: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    registration_date: Mapped[date] = mapped_column(
        Date, nullable=False, default=lambda: date.today()
    )
    notes: Mapped[Optional[str]] = mapped_column(String)
    created_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="set null")
    )
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    student: Mapped["Student"] = relationship(back_populates="registrations")
    booking: Mapped["Booking"] = relationship(back_populates="registrations")
    payments: Mapped[list["PaymentRecord"]] = relationship(
        back_populates="registration", cascade="all, delete-orphan"
    )
    attendance: Mapped[list["AttendanceRecord"]] = relationship(
        back_populates="registration", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint(
            "student_id", "booking_id", name="unique_student_booking_registration"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<StudentRegistration id={self.id!r} student_id={self.student_id!r} "
            f"booking_id={self.booking_id!r} total_fees={self.total_fees!r} "
            f"paid_amount={self.paid_amount!r} payment_status={self.payment_status!r}>"
        )


PaymentMethod = Literal["cash", "card", "transfer", "other"]


class PaymentRecord(Base):
    __tablename__ = "payment_records"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    registration_id: Mapped[str] = mapped_column(
        ForeignKey("student_registrations.id", ondelete="cascade"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, default=lambda: date.today())
    payment_method: Mapped[PaymentMethod] = mapped_column(
        String, nullable=False, default="cash"
    )
    reference_number: Mapped[Optional[str]] = mapped_column(String)
    notes: Mapped[Optional[str]] = mapped_column(String)
    created_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="set null")
    )
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    registration: Mapped["StudentRegistration"] = relationship(
        back_populates="payments"
    )

    __table_args__ = (
        Index("payment_records_registration_date_idx", "registration_id", "payment_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord id={self.id!r} registration_id={self.registration_id!r} "
            f"amount={self.amount!r} payment_date={self.payment_date!r}>"
        )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    registration_id: Mapped[str] = mapped_column(
        ForeignKey("student_registrations.id", ondelete="cascade"), nullable=False
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    marked_at: Mapped[int] = mapped_column(Integer, nullable=False, default=now_timestamp)
    created_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="set null")
    )

    registration: Mapped["StudentRegistration"] = relationship(
        back_populates="attendance"
    )

    __table_args__ = (
        UniqueConstraint(
            "registration_id", "attendance_date", name="unique_registration_attendance"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AttendanceRecord id={self.id!r} registration_id={self.registration_id!r} "
            f"attendance_date={self.attendance_date!r}>"
        )


SettlementType = Literal["income", "expense"]
SettlementSourceType = Literal["teacher", "other"]
SettlementStatus = Literal["active", "pending_edit", "pending_delete", "deleted"]


class DailySettlement(Base):
    __tablename__ = "daily_settlements"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    settlement_date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[SettlementType] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(_money(), nullable=False)
    source_type: Mapped[Optional[SettlementSourceType]] = mapped_column(String)
    source_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("teachers.id", ondelete="set null")
    )
    source_name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String)
    subject_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("subjects.id", ondelete="set null")
    )
    notes: Mapped[Optional[str]] = mapped_column(String)
    status: Mapped[SettlementStatus] = mapped_column(
        String, nullable=False, default="active"
    )
    created_by: Mapped[str] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )
    updated_at: Mapped[Optional[int]] = mapped_column(Integer)

    teacher: Mapped[Optional["Teacher"]] = relationship()
    creator: Mapped["User"] = relationship(foreign_keys=[created_by])
    change_requests: Mapped[list["SettlementChangeRequest"]] = relationship(
        back_populates="settlement", cascade="all, delete"
    )

    __table_args__ = (Index("daily_settlements_date_idx", "settlement_date"),)

    @property
    def is_pending(self) -> bool:
        return self.status in ("pending_edit", "pending_delete")

    def __repr__(self) -> str:
        return (
            f"<DailySettlement id={self.id!r} settlement_date={self.settlement_date!r} "
            f"type={self.type!r} amount={self.amount!r} status={self.status!r}>"
        )


ChangeRequestType = Literal["edit", "delete"]
ChangeRequestStatus = Literal["pending", "approved", "rejected"]


class SettlementChangeRequest(Base):
    __tablename__ = "settlement_change_requests"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    settlement_id: Mapped[str] = mapped_column(
        ForeignKey("daily_settlements.id", ondelete="cascade"), nullable=False
    )
    request_type: Mapped[ChangeRequestType] = mapped_column(String, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=lambda: {})
    reason: Mapped[Optional[str]] = mapped_column(String)
    status: Mapped[ChangeRequestStatus] = mapped_column(
        String, nullable=False, default="pending"
    )
    requested_by: Mapped[str] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    reviewed_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="set null")
    )
    reviewed_at: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[int] = mapped_column(
        Integer, nullable=False, default=now_timestamp
    )

    settlement: Mapped["DailySettlement"] = relationship(
        back_populates="change_requests"
    )
    requester: Mapped["User"] = relationship(foreign_keys=[requested_by])
    reviewer: Mapped[Optional["User"]] = relationship(foreign_keys=[reviewed_by])

    __table_args__ = (
        Index("settlement_change_requests_status_idx", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<SettlementChangeRequest id={self.id!r} settlement_id={self.settlement_id!r} "
            f"request_type={self.request_type!r} status={self.status!r}>"
        )
