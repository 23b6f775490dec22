"""
Order Builder: materialize an order and its line items from already-reserved lines.
Never talks to the stock ledger; a duplicate line surfaces as IntegrityError at flush.
"""
import logging
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from pharmadesk.models import IN_PREPARATION, Order, OrderItem
from pharmadesk.services.stock_ledger import ReservedLine
from pharmadesk.utils import to_money

logger = logging.getLogger(__name__)


def order_total(lines: Iterable[ReservedLine]) -> Decimal:
    """Sum of quantity * unit_price, rounded to cents."""
    return to_money(sum((to_money(l.unit_price) * l.quantity for l in lines), Decimal("0")))


class OrderBuilder:
    def __init__(self, session: Session):
        self.session = session

    def build(self, prescription_id: Optional[int], client_id: int, lines: list[ReservedLine]) -> Order:
        order = Order(
            client_id=client_id,
            prescription_id=prescription_id,
            total_amount=order_total(lines),
            status=IN_PREPARATION,
        )
        for line in lines:
            order.items.append(
                OrderItem(
                    medication_id=line.medication_id,
                    quantity=line.quantity,
                    unit_price=to_money(line.unit_price),
                )
            )
        self.session.add(order)
        self.session.flush()
        logger.info(
            "order_built",
            extra={"order_id": order.id, "prescription_id": prescription_id, "total": str(order.total_amount)},
        )
        return order
