"""
Pytest configuration: add backend to path, point the app at test data, and
give every test its own SQLite database file.
"""
import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Project root = parent of tests/
ROOT = Path(__file__).resolve().parent.parent
BACKEND = ROOT / "backend"
DATA = ROOT / "data"
sys.path.insert(0, str(BACKEND))
os.environ["DATA_DIR"] = str(DATA)
# Used only by the module-level app in pharmadesk.main
os.environ["SQLITE_DB_PATH"] = str(DATA / "test_pharmadesk.db")
os.environ["SEED_ON_STARTUP"] = "false"

from sqlalchemy import select  # noqa: E402

from pharmadesk.config import Settings  # noqa: E402
from pharmadesk.db import build_engine, build_session_factory, init_db  # noqa: E402
from pharmadesk.models import (  # noqa: E402
    CLIENT,
    MEDICATION_ACTIVE,
    Medication,
    Notification,
    Order,
    Prescription,
    User,
)
from pharmadesk.services.notifier import Notifier  # noqa: E402
from pharmadesk.services.prescriptions import PrescriptionStateMachine  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'pharmadesk.db'}",
        seed_on_startup=False,
        lock_timeout_seconds=15,
        data_dir=DATA,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


class Store:
    """Small helpers that create and read rows, each in its own short session."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._seq = 0

    def _add(self, row):
        with self.session_factory() as db:
            with db.begin():
                db.add(row)
            return row

    def user(self, role=CLIENT, active=True, name=None):
        self._seq += 1
        name = name or f"{role.title()} {self._seq}"
        return self._add(User(name=name, email=f"{role}{self._seq}@example.com", role=role, is_active=active))

    def medication(self, name="Paracetamol", price="15.99", quantity=100, threshold=10, status=MEDICATION_ACTIVE):
        return self._add(
            Medication(
                name=name,
                strength_form="500mg Tablet",
                description=f"{name} for tests.",
                price=Decimal(price),
                current_quantity=quantity,
                minimum_threshold=threshold,
                category="Pain Relief",
                status=status,
            )
        )

    def prescription(self, client_id):
        with self.session_factory() as db:
            with db.begin():
                return PrescriptionStateMachine(db).submit(client_id, f"prescriptions/{client_id}/scan.jpg")

    def user_by_email(self, email):
        with self.session_factory() as db:
            return db.execute(select(User).where(User.email == email)).scalar_one()

    def stock(self, medication_id):
        with self.session_factory() as db:
            return db.get(Medication, medication_id).current_quantity

    def get_prescription(self, prescription_id):
        with self.session_factory() as db:
            return db.get(Prescription, prescription_id)

    def orders_for(self, prescription_id):
        with self.session_factory() as db:
            return list(db.execute(select(Order).where(Order.prescription_id == prescription_id)).scalars())

    def order_count(self):
        with self.session_factory() as db:
            return len(db.execute(select(Order.id)).all())

    def set_price(self, medication_id, price):
        with self.session_factory() as db:
            with db.begin():
                db.get(Medication, medication_id).price = Decimal(price)

    def notifications(self, user_id):
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)
                ).scalars()
            )


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


class BrokenNotifier(Notifier):
    """Notifier whose store is unreachable: every session open fails."""

    def __init__(self):
        def factory():
            raise RuntimeError("notification store offline")

        super().__init__(factory)


@pytest.fixture
def broken_notifier():
    return BrokenNotifier()
