"""
Tests for catalog queries: name search, low-stock listing, CSV seeding.
"""
from pathlib import Path

import pytest
from sqlalchemy import select

from pharmadesk.models import MEDICATION_DISABLED, ROLES, Medication, User
from pharmadesk.services.catalog import low_stock_medications, search_medications, seed_medications, seed_users

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def test_search_by_partial_name_is_case_insensitive(session_factory, store):
    store.medication(name="Paracetamol")
    store.medication(name="Ibuprofen")
    with session_factory() as db:
        names = [m.name for m in search_medications(db, "PARA")]
    assert names == ["Paracetamol"]


def test_blank_search_lists_active_only(session_factory, store):
    store.medication(name="Paracetamol")
    store.medication(name="Ibuprofen")
    store.medication(name="Aspirin", status=MEDICATION_DISABLED)
    with session_factory() as db:
        assert [m.name for m in search_medications(db)] == ["Ibuprofen", "Paracetamol"]
        assert [m.name for m in search_medications(db, "  ")] == ["Ibuprofen", "Paracetamol"]
        assert search_medications(db, "aspirin") == []


def test_search_treats_wildcards_literally(session_factory, store):
    store.medication(name="Paracetamol")
    with session_factory() as db:
        assert search_medications(db, "%") == []
        assert search_medications(db, "nonexistent") == []


def test_low_stock(session_factory, store):
    store.medication(name="Plenty", quantity=100, threshold=10)
    edge = store.medication(name="Edge", quantity=10, threshold=10)
    empty = store.medication(name="Empty", quantity=0, threshold=5)
    with session_factory() as db:
        assert [m.id for m in low_stock_medications(db)] == [empty.id, edge.id]


def test_seed_medications_once(session_factory):
    with session_factory() as db:
        inserted = seed_medications(db, DATA_DIR)
    assert inserted == 10
    with session_factory() as db:
        assert seed_medications(db, DATA_DIR) == 0
        names = [m.name for m in search_medications(db, "vitamin")]
    assert names == ["Vitamin C", "Vitamin D3"]


def test_seed_without_file(session_factory, tmp_path):
    with session_factory() as db:
        assert seed_medications(db, tmp_path) == 0


def test_seed_users_one_per_role(session_factory):
    with session_factory() as db:
        assert seed_users(db, DATA_DIR) == 5
    with session_factory() as db:
        assert seed_users(db, DATA_DIR) == 0
        users = list(db.execute(select(User)).scalars())
    assert sorted(u.role for u in users) == sorted(ROLES)
    assert all(u.is_active for u in users)
    assert {u.email for u in users} >= {"client@example.com", "manager@example.com"}


def test_seed_users_skips_populated_table(session_factory, store):
    store.user()
    with session_factory() as db:
        assert seed_users(db, DATA_DIR) == 0


def test_seed_users_rejects_unknown_role(session_factory, tmp_path):
    (tmp_path / "users.csv").write_text("name,email,role\nRoot,root@example.com,admin\n", encoding="utf-8")
    with session_factory() as db:
        with pytest.raises(ValueError, match="admin"):
            seed_users(db, tmp_path)
    with session_factory() as db:
        assert db.execute(select(User)).first() is None


def test_seed_medications_rejects_unknown_category(session_factory, tmp_path):
    (tmp_path / "medications.csv").write_text(
        "name,price,category\nParacetamol,1.00,Pain Relief\nMystery,2.00,Snacks\n", encoding="utf-8"
    )
    with session_factory() as db:
        with pytest.raises(ValueError, match="Snacks"):
            seed_medications(db, tmp_path)
    with session_factory() as db:
        assert db.execute(select(Medication)).first() is None
