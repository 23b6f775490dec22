"""
Order Status Workflow: post-creation transitions of an order.

    in_preparation     -> ready_for_delivery, cancelled
    ready_for_delivery -> completed, failed_delivery, cancelled
    failed_delivery    -> ready_for_delivery, cancelled
    completed, cancelled are terminal

Cancelling returns every line item's quantity to stock in the same transaction.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from pharmadesk.errors import Forbidden, IllegalTransition, InvalidAssignee, NotFound, StorageUnavailable
from pharmadesk.models import (
    CANCELLED,
    COMPLETED,
    DELIVERY,
    FAILED_DELIVERY,
    IN_PREPARATION,
    MAX_ROW_ID,
    NOTIFY_ORDER_STATUS,
    READY_FOR_DELIVERY,
    Order,
    User,
)
from pharmadesk.services.notifier import Notifier
from pharmadesk.services.permissions import can_set_order_status
from pharmadesk.services.stock_ledger import StockLedger, StockRequest

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    IN_PREPARATION: frozenset({READY_FOR_DELIVERY, CANCELLED}),
    READY_FOR_DELIVERY: frozenset({COMPLETED, FAILED_DELIVERY, CANCELLED}),
    FAILED_DELIVERY: frozenset({READY_FOR_DELIVERY, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

STATUS_MESSAGES = {
    READY_FOR_DELIVERY: "is ready for delivery",
    COMPLETED: "has been delivered",
    FAILED_DELIVERY: "could not be delivered; we will try again",
    CANCELLED: "has been cancelled",
}


def is_legal_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def get_order(db: Session, order_id: int, lock: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id).options(selectinload(Order.items))
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    order = db.execute(stmt).scalar_one_or_none()
    if order is None:
        raise NotFound("Order", order_id)
    return order


class OrderStatusWorkflow:
    def __init__(self, session_factory: sessionmaker, notifier: Optional[Notifier] = None):
        self.session_factory = session_factory
        self.notifier = notifier or Notifier(session_factory)

    def _check_assignee(self, db: Session, user_id: int) -> None:
        user = db.get(User, user_id) if 1 <= user_id <= MAX_ROW_ID else None
        if user is None:
            raise InvalidAssignee(user_id, "user does not exist")
        if user.role != DELIVERY:
            raise InvalidAssignee(user_id, f"role is {user.role}, not {DELIVERY}")
        if not user.is_active:
            raise InvalidAssignee(user_id, "user is inactive")

    def transition(
        self,
        order_id: int,
        actor_role: str,
        new_status: str,
        cancellation_reason: Optional[str] = None,
        delivery_agent_id: Optional[int] = None,
    ) -> Order:
        if not 1 <= order_id <= MAX_ROW_ID:
            raise NotFound("Order", order_id)
        try:
            with self.session_factory() as db:
                with db.begin():
                    order = get_order(db, order_id, lock=True)
                    previous = order.status
                    if not is_legal_transition(previous, new_status):
                        raise IllegalTransition(order_id, previous, new_status)
                    if not can_set_order_status(actor_role, new_status):
                        raise Forbidden(
                            f"Role {actor_role} may not set orders to {new_status}",
                            {"role": actor_role, "status": new_status},
                        )
                    if new_status == READY_FOR_DELIVERY and delivery_agent_id is not None:
                        self._check_assignee(db, delivery_agent_id)
                        order.assigned_delivery_user_id = delivery_agent_id
                    if new_status == CANCELLED:
                        StockLedger(db).increment(
                            StockRequest(item.medication_id, item.quantity) for item in order.items
                        )
                        order.cancellation_reason = (cancellation_reason or "").strip() or None
                    order.status = new_status
                    order.updated_at = datetime.utcnow()
                    db.flush()
        except SQLAlchemyError as exc:
            logger.error("order_transition_storage_error", extra={"order_id": order_id, "error": str(exc)})
            raise StorageUnavailable("Could not update the order; no changes were applied") from exc

        logger.info(
            "order_status_changed",
            extra={"order_id": order_id, "from": previous, "to": new_status, "actor_role": actor_role},
        )
        message = f"Your order #{order.id} {STATUS_MESSAGES.get(new_status, 'was updated')}."
        if new_status == CANCELLED and order.cancellation_reason:
            message += f" Reason: {order.cancellation_reason}"
        self.notifier.notify(order.client_id, "Order update", message, NOTIFY_ORDER_STATUS)
        return order
