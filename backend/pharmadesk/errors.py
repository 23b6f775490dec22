"""
Domain errors. Each carries the HTTP status the API layer answers with and a
JSON-able detail payload; services raise them, the app's exception handler renders them.
"""
from typing import Any


class PharmacyError(Exception):
    """Base class for every error the core surfaces to callers."""

    status_code = 400
    code = "pharmacy_error"

    def __init__(self, message: str, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail if detail is not None else message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "detail": self.detail}


# --- Validation ---
class ValidationFailed(PharmacyError):
    """Malformed input, rejected before any transaction opens."""
    status_code = 422
    code = "validation_failed"


class NotFound(PharmacyError):
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} {resource_id} not found", {"resource": resource, "id": resource_id})


# --- Conflicts ---
class AlreadyProcessed(PharmacyError):
    status_code = 409
    code = "already_processed"

    def __init__(self, prescription_id: int, status: str | None = None):
        super().__init__(
            f"Prescription {prescription_id} is no longer pending",
            {"prescription_id": prescription_id, "status": status},
        )
        self.prescription_id = prescription_id
        self.status = status


class InsufficientStock(PharmacyError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, shortfalls: list):
        super().__init__(
            "Insufficient stock for one or more medications",
            [s.as_dict() for s in shortfalls],
        )
        self.shortfalls = shortfalls


class IllegalTransition(PharmacyError):
    status_code = 409
    code = "illegal_transition"

    def __init__(self, order_id: int, current: str, target: str):
        super().__init__(
            f"Order {order_id} cannot move from {current} to {target}",
            {"order_id": order_id, "from": current, "to": target},
        )
        self.current = current
        self.target = target


class Forbidden(PharmacyError):
    status_code = 403
    code = "forbidden"


class InvalidAssignee(PharmacyError):
    status_code = 422
    code = "invalid_assignee"

    def __init__(self, user_id: Any, reason: str):
        super().__init__(f"User {user_id} cannot be assigned: {reason}", {"user_id": user_id, "reason": reason})


# --- Infrastructure ---
class StorageUnavailable(PharmacyError):
    """Lock timeout, lost connection or another database failure; nothing was applied."""
    status_code = 503
    code = "storage_unavailable"
