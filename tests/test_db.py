"""
Tests for SQLite transaction modes: writers hold the write lock from BEGIN,
read-only sessions do not queue behind them.
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from pharmadesk.config import Settings
from pharmadesk.db import build_engine, build_session_factory, init_db, read_session
from pharmadesk.models import Medication


@pytest.fixture
def impatient_factory(tmp_path):
    """Session factory with a short busy timeout so a blocked read fails fast."""
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'locks.db'}",
        seed_on_startup=False,
        lock_timeout_seconds=0.2,
        data_dir=tmp_path,
    )
    engine = build_engine(settings)
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


def test_read_session_runs_while_a_write_is_open(impatient_factory):
    with impatient_factory() as writer:
        with writer.begin():
            writer.add(Medication(name="Paracetamol", price=Decimal("1.00"), current_quantity=5))
            writer.flush()
            with read_session(impatient_factory) as reader:
                assert reader.execute(select(func.count(Medication.id))).scalar_one() == 0
    with read_session(impatient_factory) as reader:
        assert reader.execute(select(func.count(Medication.id))).scalar_one() == 1
