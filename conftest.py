from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from tutoring_cli.commands.booking.catalog import create_booking
from tutoring_cli.commands.create.reference import (
    create_academic_stage,
    create_hall,
    create_student,
    create_teacher,
    create_user,
)
from tutoring_cli.commands.enroll.registration import register
from tutoring_cli.db.config import enable_sqlite_foreign_keys, get_session_factory, init_db
from tutoring_cli.utils import logging_config

# A Wednesday
TODAY = date(2025, 1, 15)


@pytest.fixture(autouse=True)
def _logs_in_tmp(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config._logging_config, "logs_dir", tmp_path / "logs")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = get_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def hall(db):
    return create_hall(db, "Hall A", capacity=30)


@pytest.fixture
def teacher(db):
    return create_teacher(db, "Mona Adel", teacher_code="T07", default_class_fee="200")


@pytest.fixture
def stage(db):
    return create_academic_stage(db, "Grade 10")


@pytest.fixture
def student(db):
    return create_student(db, "S-0001", "Omar Hassan", "01000000001")


@pytest.fixture
def make_student(db):
    counter = {"n": 100}

    def _make(name="Student"):
        counter["n"] += 1
        n = counter["n"]
        return create_student(db, f"S-{n:04d}", f"{name} {n}", f"010000{n:05d}")

    return _make


@pytest.fixture
def make_booking(db, hall, teacher, stage):
    def _make(
        days=("wednesday",),
        start_time=time(16, 0),
        start_date=date(2025, 1, 1),
        end_date=None,
        fee=None,
        hall_id=None,
        teacher_id=None,
        duration_minutes=90,
    ):
        return create_booking(
            db,
            hall_id or hall.id,
            teacher_id or teacher.id,
            stage.id,
            days,
            start_time,
            start_date,
            end_date,
            fee=fee,
            duration_minutes=duration_minutes,
        )

    return _make


@pytest.fixture
def booking(make_booking):
    return make_booking()


@pytest.fixture
def registration(db, student, booking):
    return register(db, student.id, booking.id)


@pytest.fixture
def make_user(db):
    def _make(role, name=None):
        return create_user(db, name or role.replace("_", " ").title(), role)

    return _make
