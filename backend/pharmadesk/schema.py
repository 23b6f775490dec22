"""
Pydantic schemas for API request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pharmadesk.models import MAX_ROW_ID

OrderStatus = Literal["in_preparation", "ready_for_delivery", "completed", "cancelled", "failed_delivery"]


# --- Medications ---
class MedicationResponse(BaseModel):
    """Medication record returned by API."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    strength_form: str
    description: str
    price: Decimal
    current_quantity: int
    minimum_threshold: int
    category: str
    status: str


# --- Prescriptions ---
class OrderItemIn(BaseModel):
    medication_id: int = Field(..., ge=1, le=MAX_ROW_ID)
    quantity: int = Field(..., gt=0)


class ProcessPrescriptionRequest(BaseModel):
    """Request body for POST /prescriptions/{id}/process."""
    items: list[OrderItemIn] = Field(..., min_length=1)

    @field_validator("items")
    @classmethod
    def no_duplicate_medications(cls, items: list[OrderItemIn]) -> list[OrderItemIn]:
        ids = [i.medication_id for i in items]
        if len(ids) != len(set(ids)):
            raise ValueError("each medication may appear only once")
        return items


class RejectPrescriptionRequest(BaseModel):
    """Request body for POST /prescriptions/{id}/reject."""
    reason: str = Field(..., min_length=1, max_length=2000)


class PrescriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    status: str
    reference_number: str
    processed_by: Optional[int] = None
    rejection_reason: Optional[str] = None


# --- Orders ---
class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    medication_id: int
    quantity: int
    unit_price: Decimal


class OrderResponse(BaseModel):
    """Order with its frozen line items."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    prescription_id: Optional[int] = None
    total_amount: Decimal
    status: str
    assigned_delivery_user_id: Optional[int] = None
    cancellation_reason: Optional[str] = None
    items: list[OrderItemResponse]


class OrderStatusUpdate(BaseModel):
    """Request body for POST /orders/{id}/status."""
    status: OrderStatus
    cancellation_reason: Optional[str] = None
    delivery_agent_id: Optional[int] = Field(None, ge=1, le=MAX_ROW_ID)


# --- Notifications ---
class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: str
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    user_id: int
    notifications: list[NotificationResponse]
