"""
Stock Ledger: the only writer of Medication.current_quantity.

Locks are taken one medication at a time in ascending id order, so two
fulfillments touching overlapping medications always queue in the same order.
Validation happens after the locks are held; check_availability is advisory.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmadesk.errors import InsufficientStock, NotFound
from pharmadesk.models import MEDICATION_ACTIVE, Medication
from pharmadesk.utils import to_money

logger = logging.getLogger(__name__)

REASON_INSUFFICIENT = "insufficient"
REASON_INACTIVE = "inactive"
REASON_MISSING = "missing"


@dataclass(frozen=True)
class StockRequest:
    medication_id: int
    quantity: int


@dataclass(frozen=True)
class Shortfall:
    medication_id: int
    requested: int
    available: int
    reason: str = REASON_INSUFFICIENT
    name: str | None = None

    def as_dict(self) -> dict:
        return {
            "medication_id": self.medication_id,
            "name": self.name,
            "requested": self.requested,
            "available": self.available,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ReservedLine:
    """A decremented line, with the unit price read under the lock."""
    medication_id: int
    quantity: int
    unit_price: Decimal


def _aggregate(items: Iterable[StockRequest]) -> "OrderedDict[int, int]":
    """Sum quantities per medication, keyed in ascending id order."""
    totals: dict[int, int] = {}
    for item in items:
        totals[item.medication_id] = totals.get(item.medication_id, 0) + item.quantity
    return OrderedDict(sorted(totals.items()))


def _shortfall_for(med_id: int, qty: int, med: Medication | None) -> Shortfall | None:
    if med is None:
        return Shortfall(med_id, qty, 0, REASON_MISSING)
    if med.status != MEDICATION_ACTIVE:
        return Shortfall(med_id, qty, med.current_quantity, REASON_INACTIVE, med.name)
    if med.current_quantity < qty:
        return Shortfall(med_id, qty, med.current_quantity, REASON_INSUFFICIENT, med.name)
    return None


class StockLedger:
    """Check, reserve and restore medication stock within the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def check_availability(self, items: Iterable[StockRequest]) -> list[Shortfall]:
        """Non-locking pre-check. Empty list means every item looked available."""
        requested = _aggregate(items)
        if not requested:
            return []
        rows = self.session.execute(
            select(Medication).where(Medication.id.in_(list(requested)))
        ).scalars().all()
        by_id = {m.id: m for m in rows}
        shortfalls = []
        for med_id, qty in requested.items():
            s = _shortfall_for(med_id, qty, by_id.get(med_id))
            if s:
                shortfalls.append(s)
        return shortfalls

    def _lock(self, medication_id: int) -> Medication | None:
        stmt = (
            select(Medication)
            .where(Medication.id == medication_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _lock_all(self, medication_ids: Iterable[int]) -> dict[int, Medication | None]:
        return {med_id: self._lock(med_id) for med_id in sorted(medication_ids)}

    def lock_and_decrement(self, items: Iterable[StockRequest]) -> list[ReservedLine]:
        """
        Reserve stock for every item or for none of them.
        Must run inside an open transaction; raises InsufficientStock listing
        every failing item with requested vs. available quantity.
        """
        requested = _aggregate(items)
        locked = self._lock_all(requested)

        shortfalls = []
        for med_id, qty in requested.items():
            s = _shortfall_for(med_id, qty, locked[med_id])
            if s:
                shortfalls.append(s)
        if shortfalls:
            logger.info(
                "stock_reservation_refused",
                extra={"shortfalls": [s.as_dict() for s in shortfalls]},
            )
            raise InsufficientStock(shortfalls)

        now = datetime.utcnow()
        reserved = []
        for med_id, qty in requested.items():
            med = locked[med_id]
            med.current_quantity = med.current_quantity - qty
            med.updated_at = now
            reserved.append(ReservedLine(med_id, qty, to_money(med.price)))
        self.session.flush()
        logger.info(
            "stock_reserved",
            extra={"lines": [(r.medication_id, r.quantity) for r in reserved]},
        )
        return reserved

    def increment(self, items: Iterable[StockRequest]) -> None:
        """Return stock (order cancellation). No upper bound is enforced."""
        requested = _aggregate(items)
        locked = self._lock_all(requested)
        now = datetime.utcnow()
        for med_id, qty in requested.items():
            med = locked[med_id]
            if med is None:
                raise NotFound("Medication", med_id)
            med.current_quantity = med.current_quantity + qty
            med.updated_at = now
        self.session.flush()
        logger.info("stock_restored", extra={"lines": list(requested.items())})

    def low_stock(self, medication_ids: Iterable[int]) -> list[Medication]:
        """Of the given medications, those at or below their minimum threshold."""
        ids = list(medication_ids)
        if not ids:
            return []
        return list(
            self.session.execute(
                select(Medication)
                .where(Medication.id.in_(ids))
                .where(Medication.current_quantity <= Medication.minimum_threshold)
                .order_by(Medication.id)
            ).scalars()
        )
