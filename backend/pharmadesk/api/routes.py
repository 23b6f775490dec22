"""
API routes: medication catalog, prescription processing, order status, notifications.
Caller identity comes from the auth layer in front of this service via X-User-Id.
"""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session, sessionmaker

from pharmadesk.db import get_db, get_session_factory, read_session
from pharmadesk.errors import Forbidden, NotFound
from pharmadesk.models import CLIENT, MAX_ROW_ID, User
from pharmadesk.schema import (
    MedicationResponse,
    NotificationListResponse,
    NotificationResponse,
    OrderResponse,
    OrderStatusUpdate,
    PrescriptionResponse,
    ProcessPrescriptionRequest,
    RejectPrescriptionRequest,
)
from pharmadesk.services import catalog
from pharmadesk.services.fulfillment import FulfillmentOrchestrator
from pharmadesk.services.notifier import Notifier
from pharmadesk.services.order_workflow import OrderStatusWorkflow, get_order
from pharmadesk.services.permissions import can_process_prescriptions, can_view_low_stock

logger = logging.getLogger(__name__)
router = APIRouter()

ACTOR_HEADER = APIKeyHeader(name="X-User-Id", auto_error=False)


# path ids outside the storable INTEGER range are rejected with 422
RowId = Annotated[int, Path(ge=1, le=MAX_ROW_ID)]


def current_actor(
    user_id: Optional[str] = Depends(ACTOR_HEADER),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> User:
    """Resolve the authenticated user; unknown or inactive users get 401."""
    if not user_id or not user_id.isdigit() or int(user_id) > MAX_ROW_ID:
        raise HTTPException(status_code=401, detail="Authentication required")
    with read_session(session_factory) as db:
        user = db.get(User, int(user_id))
    if user is None or not user.is_active:
        logger.warning("actor_rejected", extra={"user_id": user_id})
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def get_notifier(request: Request) -> Notifier:
    return Notifier(request.app.state.session_factory)


def get_orchestrator(request: Request, notifier: Notifier = Depends(get_notifier)) -> FulfillmentOrchestrator:
    return FulfillmentOrchestrator(request.app.state.session_factory, notifier)


def get_workflow(request: Request, notifier: Notifier = Depends(get_notifier)) -> OrderStatusWorkflow:
    return OrderStatusWorkflow(request.app.state.session_factory, notifier)


# --- Medications ---
@router.get("/medications", response_model=list[MedicationResponse])
def list_medications(name: Optional[str] = None, db: Session = Depends(get_db)):
    """Public search: active medications, optionally filtered by name."""
    if name is not None and len(name) > 255:
        raise HTTPException(status_code=422, detail="name must be at most 255 characters")
    return [MedicationResponse.model_validate(m) for m in catalog.search_medications(db, name)]


@router.get("/medications/low-stock", response_model=list[MedicationResponse])
def list_low_stock(actor: User = Depends(current_actor), db: Session = Depends(get_db)):
    """Medications at or below their minimum threshold (managers only)."""
    if not can_view_low_stock(actor.role):
        raise Forbidden("Only managers can view low-stock medications", {"role": actor.role})
    return [MedicationResponse.model_validate(m) for m in catalog.low_stock_medications(db)]


# --- Prescriptions ---
@router.post("/prescriptions/{prescription_id}/process", response_model=OrderResponse, status_code=201)
def process_prescription(
    prescription_id: RowId,
    req: ProcessPrescriptionRequest,
    actor: User = Depends(current_actor),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
):
    """Convert a pending prescription into an order, reserving stock."""
    if not can_process_prescriptions(actor.role):
        raise Forbidden("Role may not process prescriptions", {"role": actor.role})
    order = orchestrator.process_prescription(
        prescription_id,
        actor.id,
        [(item.medication_id, item.quantity) for item in req.items],
    )
    return OrderResponse.model_validate(order)


@router.post("/prescriptions/{prescription_id}/reject", response_model=PrescriptionResponse)
def reject_prescription(
    prescription_id: RowId,
    req: RejectPrescriptionRequest,
    actor: User = Depends(current_actor),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
):
    if not can_process_prescriptions(actor.role):
        raise Forbidden("Role may not reject prescriptions", {"role": actor.role})
    prescription = orchestrator.reject_prescription(prescription_id, actor.id, req.reason)
    return PrescriptionResponse.model_validate(prescription)


# --- Orders ---
@router.get("/orders/{order_id}", response_model=OrderResponse)
def read_order(order_id: RowId, actor: User = Depends(current_actor), db: Session = Depends(get_db)):
    """Order detail; clients only see their own orders."""
    order = get_order(db, order_id)
    if actor.role == CLIENT and order.client_id != actor.id:
        raise NotFound("Order", order_id)
    return OrderResponse.model_validate(order)


@router.post("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: RowId,
    req: OrderStatusUpdate,
    actor: User = Depends(current_actor),
    workflow: OrderStatusWorkflow = Depends(get_workflow),
):
    """Move an order along its status workflow."""
    order = workflow.transition(
        order_id,
        actor.role,
        req.status,
        cancellation_reason=req.cancellation_reason,
        delivery_agent_id=req.delivery_agent_id,
    )
    return OrderResponse.model_validate(order)


# --- Notifications ---
@router.get("/users/me/notifications", response_model=NotificationListResponse)
def my_notifications(
    unread_only: bool = False,
    actor: User = Depends(current_actor),
    notifier: Notifier = Depends(get_notifier),
):
    rows = notifier.list_for_user(actor.id, unread_only=unread_only)
    return NotificationListResponse(
        user_id=actor.id,
        notifications=[NotificationResponse.model_validate(n) for n in rows],
    )


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def read_notification(
    notification_id: RowId,
    actor: User = Depends(current_actor),
    notifier: Notifier = Depends(get_notifier),
):
    return NotificationResponse.model_validate(notifier.mark_read(notification_id, actor.id))
