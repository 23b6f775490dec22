"""
Role capabilities. The HTTP layer and the order status workflow both ask these
functions, so authorization rules live in one place.
"""
from pharmadesk.models import (
    CANCELLED,
    COMPLETED,
    DELIVERY,
    FAILED_DELIVERY,
    MANAGER,
    PHARMACIST,
    READY_FOR_DELIVERY,
    SALESPERSON,
)

PRESCRIPTION_PROCESSORS = frozenset({SALESPERSON, PHARMACIST, MANAGER})
CATALOG_MANAGERS = frozenset({MANAGER})

# target order status -> roles allowed to set it
ORDER_STATUS_ROLES = {
    READY_FOR_DELIVERY: frozenset({PHARMACIST, MANAGER}),
    CANCELLED: frozenset({PHARMACIST, MANAGER}),
    COMPLETED: frozenset({DELIVERY, MANAGER}),
    FAILED_DELIVERY: frozenset({DELIVERY, MANAGER}),
}


def can_set_order_status(actor_role: str, target_status: str) -> bool:
    return actor_role in ORDER_STATUS_ROLES.get(target_status, frozenset())


def can_process_prescriptions(actor_role: str) -> bool:
    """Process or reject a pending prescription."""
    return actor_role in PRESCRIPTION_PROCESSORS


def can_view_low_stock(actor_role: str) -> bool:
    return actor_role in CATALOG_MANAGERS
