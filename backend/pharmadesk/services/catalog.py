"""
Catalog queries: medication search by name, low-stock listing.
CSV seeding of the medication catalog and of one starter account per role.
"""
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pharmadesk.models import MEDICATION_ACTIVE, MEDICATION_CATEGORIES, ROLES, Medication, User
from pharmadesk.utils import load_csv, to_money

logger = logging.getLogger(__name__)

MEDICATIONS_CSV = "medications.csv"
USERS_CSV = "users.csv"


def search_medications(db: Session, name: Optional[str] = None) -> list[Medication]:
    """Active medications whose name contains `name` (case-insensitive); all active ones when blank."""
    stmt = select(Medication).where(Medication.status == MEDICATION_ACTIVE)
    term = (name or "").strip()
    if term:
        stmt = stmt.where(Medication.name.icontains(term, autoescape=True))
    return list(db.execute(stmt.order_by(Medication.name, Medication.id)).scalars())


def low_stock_medications(db: Session) -> list[Medication]:
    """Medications at or below their minimum threshold, lowest stock first."""
    stmt = (
        select(Medication)
        .where(Medication.current_quantity <= Medication.minimum_threshold)
        .order_by(Medication.current_quantity, Medication.id)
    )
    return list(db.execute(stmt).scalars())


def _row_to_medication(row: dict[str, Any]) -> Medication:
    category = (row.get("category") or "Pain Relief").strip()
    if category not in MEDICATION_CATEGORIES:
        raise ValueError(f"Unknown medication category {category!r} for {row['name']!r}")
    return Medication(
        name=row["name"].strip(),
        strength_form=(row.get("strength_form") or "").strip(),
        description=(row.get("description") or "").strip(),
        price=to_money(Decimal(row["price"])),
        current_quantity=int(row.get("current_quantity") or 0),
        minimum_threshold=int(row.get("minimum_threshold") or 10),
        category=category,
        status=(row.get("status") or MEDICATION_ACTIVE).strip(),
    )


def seed_medications(db: Session, data_dir: Path) -> int:
    """
    Load data_dir/medications.csv into an empty medications table.
    Returns number of rows inserted (0 if the table already has data or the file is missing).
    """
    rows = load_csv(Path(data_dir) / MEDICATIONS_CSV, required=False)
    if not rows:
        return 0
    with db.begin():
        if db.execute(select(func.count(Medication.id))).scalar_one():
            return 0
        db.add_all(_row_to_medication(r) for r in rows)
    logger.info("medications_seeded", extra={"count": len(rows)})
    return len(rows)


def _row_to_user(row: dict[str, Any]) -> User:
    role = row["role"].strip()
    if role not in ROLES:
        raise ValueError(f"Unknown role {role!r} for {row['email']!r}")
    return User(name=row["name"].strip(), email=row["email"].strip().lower(), role=role, is_active=True)


def seed_users(db: Session, data_dir: Path) -> int:
    """Load data_dir/users.csv into an empty users table. Returns rows inserted."""
    rows = load_csv(Path(data_dir) / USERS_CSV, required=False)
    if not rows:
        return 0
    users = [_row_to_user(r) for r in rows]
    with db.begin():
        if db.execute(select(func.count(User.id))).scalar_one():
            return 0
        db.add_all(users)
    logger.info("users_seeded", extra={"count": len(users), "roles": sorted({u.role for u in users})})
    return len(users)
