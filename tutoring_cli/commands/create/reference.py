"""
Reference data the ledgers point at: users, halls, teachers, academic
stages, subjects and students.
"""

from typing import Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutoring_cli.errors import NotFound, ValidationError
from tutoring_cli.models import AcademicStage, Hall, Student, Subject, Teacher, User
from tutoring_cli.utils.logging_config import get_logger
from tutoring_cli.utils.money import to_optional_decimal
from tutoring_cli.utils.permissions import ALL_ROLES

logger = get_logger(__name__)

T = TypeVar("T")


def _save(db: Session, instance: T, label: str) -> T:
    db.add(instance)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Could not save {label}: {e.orig}")
        raise ValidationError(f"{label} already exists")
    logger.info(f"Created {instance!r}")
    return instance


def _require_name(value: str, field: str = "name") -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field.capitalize()} is required")
    return cleaned


def create_user(db: Session, name: str, role: str = "read_only") -> User:
    if role not in ALL_ROLES:
        raise ValidationError(
            f"Invalid role {role!r}, expected one of {', '.join(sorted(ALL_ROLES))}"
        )
    return _save(db, User(name=_require_name(name), role=role), f"User {name}")


def create_hall(db: Session, name: str, capacity: int = 0) -> Hall:
    if capacity < 0:
        raise ValidationError("Capacity cannot be negative")
    name = _require_name(name)
    return _save(db, Hall(name=name, capacity=capacity), f"Hall {name}")


def create_teacher(
    db: Session,
    name: str,
    teacher_code: Optional[str] = None,
    mobile_phone: Optional[str] = None,
    default_class_fee=None,
) -> Teacher:
    fee = to_optional_decimal(default_class_fee, "default class fee")
    if fee is not None and fee < 0:
        raise ValidationError("Default class fee cannot be negative")
    teacher = Teacher(
        name=_require_name(name),
        teacher_code=teacher_code,
        mobile_phone=mobile_phone,
        default_class_fee=fee,
    )
    return _save(db, teacher, f"Teacher {teacher_code or name}")


def create_academic_stage(db: Session, name: str) -> AcademicStage:
    name = _require_name(name)
    return _save(db, AcademicStage(name=name), f"Academic stage {name}")


def create_subject(db: Session, name: str) -> Subject:
    name = _require_name(name)
    return _save(db, Subject(name=name), f"Subject {name}")


def create_student(
    db: Session,
    serial_number: str,
    name: str,
    mobile_phone: str,
    parent_phone: Optional[str] = None,
    city: Optional[str] = None,
) -> Student:
    student = Student(
        serial_number=_require_name(serial_number, "serial number"),
        name=_require_name(name),
        mobile_phone=_require_name(mobile_phone, "mobile phone"),
        parent_phone=parent_phone,
        city=city,
    )
    return _save(db, student, f"Student {serial_number}")


def get_student_by_serial(db: Session, serial_number: str) -> Student:
    student = (
        db.query(Student).filter(Student.serial_number == serial_number).first()
    )
    if student is None:
        raise NotFound("Student", serial_number)
    return student
