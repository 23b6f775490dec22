"""
SQLAlchemy models for users, medications, prescriptions, orders, order items and notifications.
"""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from pharmadesk.db import Base

# Largest id a row can carry (signed 64-bit INTEGER)
MAX_ROW_ID = 2**63 - 1

# Roles
CLIENT = "client"
PHARMACIST = "pharmacist"
SALESPERSON = "salesperson"
DELIVERY = "delivery"
MANAGER = "manager"
ROLES = (CLIENT, PHARMACIST, SALESPERSON, DELIVERY, MANAGER)

# Medication status
MEDICATION_ACTIVE = "active"
MEDICATION_DISABLED = "disabled"
MEDICATION_CATEGORIES = ("Pain Relief", "Antibiotics", "Vitamins", "Cold & Flu", "Skincare")

# Prescription status
PRESCRIPTION_PENDING = "pending"
PRESCRIPTION_PROCESSED = "processed"
PRESCRIPTION_REJECTED = "rejected"

# Order status
IN_PREPARATION = "in_preparation"
READY_FOR_DELIVERY = "ready_for_delivery"
COMPLETED = "completed"
CANCELLED = "cancelled"
FAILED_DELIVERY = "failed_delivery"
ORDER_STATUSES = (IN_PREPARATION, READY_FOR_DELIVERY, COMPLETED, CANCELLED, FAILED_DELIVERY)

# Notification types
NOTIFY_ORDER_STATUS = "order_status"
NOTIFY_PRESCRIPTION_UPDATE = "prescription_update"
NOTIFY_ADVICE_RESPONSE = "advice_response"
NOTIFY_SYSTEM_ALERT = "system_alert"
NOTIFICATION_TYPES = (NOTIFY_ORDER_STATUS, NOTIFY_PRESCRIPTION_UPDATE, NOTIFY_ADVICE_RESPONSE, NOTIFY_SYSTEM_ALERT)


class User(Base):
    """Account owned by the auth collaborator; only role and activity matter here."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(32), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Medication(Base):
    """Catalog item. current_quantity is only mutated through the stock ledger."""
    __tablename__ = "medications"
    __table_args__ = (
        CheckConstraint("current_quantity >= 0", name="ck_medications_quantity_non_negative"),
        Index("ix_medications_category_status", "category", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    strength_form = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(8, 2), nullable=False)
    current_quantity = Column(Integer, nullable=False, default=0, index=True)
    minimum_threshold = Column(Integer, nullable=False, default=10)
    category = Column(String(32), nullable=False, default="Pain Relief")
    status = Column(String(16), nullable=False, default=MEDICATION_ACTIVE)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Prescription(Base):
    """A client's submitted prescription: pending -> processed | rejected."""
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    image_path = Column(String(512), nullable=False)
    status = Column(String(16), nullable=False, default=PRESCRIPTION_PENDING)
    processed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    reference_number = Column(String(32), unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Order(Base):
    """Fulfillment unit; at most one per prescription (unique prescription_id)."""
    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_client_status", "client_id", "status"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    prescription_id = Column(
        Integer, ForeignKey("prescriptions.id", ondelete="RESTRICT"), nullable=True, unique=True
    )
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(32), nullable=False, default=IN_PREPARATION, index=True)
    assigned_delivery_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.medication_id",
    )


class OrderItem(Base):
    """Line item with the unit price frozen at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint("order_id", "medication_id", name="uq_order_items_order_medication"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    medication_id = Column(Integer, ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(8, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="items")


class Notification(Base):
    """In-app notification record."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
