import pytest
from sqlalchemy import text

from tutoring_cli.db.config import get_engine, get_session_factory, init_db, transaction
from tutoring_cli.models import Hall


def test_file_engine_enforces_foreign_keys(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path / 'centre.db'}")
    init_db(engine)

    with engine.connect() as conn:
        assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
    engine.dispose()


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with transaction(db):
            db.add(Hall(name="Hall Z"))
            db.flush()
            raise RuntimeError("boom")

    assert db.query(Hall).count() == 0

    with transaction(db):
        db.add(Hall(name="Hall Z"))
    assert db.query(Hall).count() == 1


def test_session_factory_does_not_autoflush(engine):
    session = get_session_factory(engine)()
    try:
        session.add(Hall(name="Pending"))
        assert session.query(Hall).count() == 0
    finally:
        session.close()
