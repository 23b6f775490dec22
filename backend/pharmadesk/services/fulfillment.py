"""
Fulfillment Orchestrator: turn a pending prescription into an order.

Validation -> advisory stock check -> one transaction (lock prescription,
reserve stock, build order, flip prescription) -> commit -> best-effort
notifications. Everything before the commit is all-or-nothing.
"""
import logging
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from pharmadesk.db import read_session
from pharmadesk.errors import AlreadyProcessed, InsufficientStock, NotFound, StorageUnavailable, ValidationFailed
from pharmadesk.models import (
    MAX_ROW_ID,
    NOTIFY_PRESCRIPTION_UPDATE,
    NOTIFY_SYSTEM_ALERT,
    PRESCRIPTION_PENDING,
    Order,
    Prescription,
)
from pharmadesk.services.notifier import Notifier
from pharmadesk.services.order_builder import OrderBuilder
from pharmadesk.services.prescriptions import PrescriptionStateMachine
from pharmadesk.services.stock_ledger import StockLedger, StockRequest

logger = logging.getLogger(__name__)


def _is_duplicate_order(exc: IntegrityError) -> bool:
    """True when the unique orders.prescription_id constraint fired: another processor committed first."""
    return "prescription_id" in str(exc.orig)


def _check_prescription_id(prescription_id: int) -> None:
    # no stored row can carry an id outside this range
    if not 1 <= prescription_id <= MAX_ROW_ID:
        raise NotFound("Prescription", prescription_id)


def validate_items(items: Iterable[Any]) -> list[StockRequest]:
    """
    Normalize request items to StockRequest and reject malformed input.
    Accepts StockRequest, (medication_id, quantity) pairs or mappings with
    medication_id/quantity keys.
    """
    requests: list[StockRequest] = []
    errors: list[dict] = []
    seen: set[int] = set()
    for index, item in enumerate(items or []):
        if isinstance(item, StockRequest):
            med_id, qty = item.medication_id, item.quantity
        elif isinstance(item, dict):
            med_id, qty = item.get("medication_id"), item.get("quantity")
        else:
            try:
                med_id, qty = item
            except (TypeError, ValueError):
                errors.append({"index": index, "error": "malformed item"})
                continue
        if isinstance(med_id, bool) or not isinstance(med_id, int):
            errors.append({"index": index, "error": "medication_id must be an integer"})
            continue
        if not 1 <= med_id <= MAX_ROW_ID:
            errors.append({"index": index, "medication_id": med_id, "error": "medication_id out of range"})
            continue
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            errors.append({"index": index, "medication_id": med_id, "error": "quantity must be a positive integer"})
            continue
        if med_id in seen:
            errors.append({"index": index, "medication_id": med_id, "error": "duplicate medication"})
            continue
        seen.add(med_id)
        requests.append(StockRequest(med_id, qty))
    if not requests and not errors:
        raise ValidationFailed("At least one item is required", [{"error": "empty item list"}])
    if errors:
        raise ValidationFailed("Invalid order items", errors)
    return requests


class FulfillmentOrchestrator:
    def __init__(self, session_factory: sessionmaker, notifier: Optional[Notifier] = None):
        self.session_factory = session_factory
        self.notifier = notifier or Notifier(session_factory)

    def _precheck(self, prescription_id: int, lines: list[StockRequest]) -> None:
        """Advisory checks in a read-only transaction; not authoritative."""
        with read_session(self.session_factory) as db:
            prescription = PrescriptionStateMachine(db).get(prescription_id)
            if prescription.status != PRESCRIPTION_PENDING:
                raise AlreadyProcessed(prescription_id, prescription.status)
            shortfalls = StockLedger(db).check_availability(lines)
        if shortfalls:
            logger.info("fulfillment_precheck_failed", extra={"shortfalls": [s.as_dict() for s in shortfalls]})
            raise InsufficientStock(shortfalls)

    def process_prescription(self, prescription_id: int, salesperson_id: int, items: Iterable[Any]) -> Order:
        lines = validate_items(items)
        _check_prescription_id(prescription_id)
        try:
            self._precheck(prescription_id, lines)
            with self.session_factory() as db:
                with db.begin():
                    prescriptions = PrescriptionStateMachine(db)
                    prescription = prescriptions.get_pending(prescription_id)
                    ledger = StockLedger(db)
                    reserved = ledger.lock_and_decrement(lines)
                    order = OrderBuilder(db).build(prescription.id, prescription.client_id, reserved)
                    prescriptions.mark_processed(prescription.id, salesperson_id)
                    low = [
                        (m.id, m.name, m.current_quantity)
                        for m in ledger.low_stock(r.medication_id for r in reserved)
                    ]
        except IntegrityError as exc:
            if not _is_duplicate_order(exc):
                logger.error("fulfillment_constraint_error", extra={"prescription_id": prescription_id, "error": str(exc)})
                raise StorageUnavailable("Could not complete fulfillment; no changes were applied") from exc
            logger.info("fulfillment_duplicate_order", extra={"prescription_id": prescription_id})
            raise AlreadyProcessed(prescription_id) from exc
        except SQLAlchemyError as exc:
            logger.error("fulfillment_storage_error", extra={"prescription_id": prescription_id, "error": str(exc)})
            raise StorageUnavailable("Could not complete fulfillment; no changes were applied") from exc

        logger.info(
            "order_created",
            extra={"order_id": order.id, "prescription_id": prescription_id, "total": str(order.total_amount)},
        )
        self.notifier.notify(
            order.client_id,
            "Prescription processed",
            f"Your prescription {prescription.reference_number} was processed into order #{order.id} "
            f"(total {order.total_amount}).",
            NOTIFY_PRESCRIPTION_UPDATE,
        )
        for med_id, name, qty in low:
            self.notifier.notify_managers(
                "Low stock",
                f"{name} (#{med_id}) is down to {qty} units.",
                NOTIFY_SYSTEM_ALERT,
            )
        return order

    def reject_prescription(self, prescription_id: int, processor_id: int, reason: str) -> Prescription:
        if not reason or not reason.strip():
            raise ValidationFailed("A rejection reason is required", {"field": "reason"})
        _check_prescription_id(prescription_id)
        try:
            with self.session_factory() as db:
                with db.begin():
                    prescriptions = PrescriptionStateMachine(db)
                    prescriptions.get_pending(prescription_id)
                    prescriptions.mark_rejected(prescription_id, processor_id, reason)
                    prescription = prescriptions.get(prescription_id)
        except SQLAlchemyError as exc:
            logger.error("rejection_storage_error", extra={"prescription_id": prescription_id, "error": str(exc)})
            raise StorageUnavailable("Could not reject prescription; no changes were applied") from exc

        self.notifier.notify(
            prescription.client_id,
            "Prescription rejected",
            f"Your prescription {prescription.reference_number} was rejected: {prescription.rejection_reason}",
            NOTIFY_PRESCRIPTION_UPDATE,
        )
        return prescription
