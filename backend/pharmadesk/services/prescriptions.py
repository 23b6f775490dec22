"""
Prescription State Machine: pending -> processed | rejected, each exactly once.

Both transitions are a conditional UPDATE ... WHERE status = 'pending' executed
in the caller's transaction; zero affected rows means another processor won.
"""
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pharmadesk.errors import AlreadyProcessed, NotFound, ValidationFailed
from pharmadesk.models import (
    PRESCRIPTION_PENDING,
    PRESCRIPTION_PROCESSED,
    PRESCRIPTION_REJECTED,
    Prescription,
)
from pharmadesk.utils import generate_reference_number

logger = logging.getLogger(__name__)


class PrescriptionStateMachine:
    def __init__(self, session: Session):
        self.session = session

    def submit(self, client_id: int, image_path: str) -> Prescription:
        """Create a pending prescription (submission itself belongs to the client app)."""
        prescription = Prescription(
            client_id=client_id,
            image_path=image_path,
            status=PRESCRIPTION_PENDING,
            reference_number=generate_reference_number(),
        )
        self.session.add(prescription)
        self.session.flush()
        return prescription

    def get(self, prescription_id: int, lock: bool = False) -> Prescription:
        stmt = select(Prescription).where(Prescription.id == prescription_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        prescription = self.session.execute(stmt).scalar_one_or_none()
        if prescription is None:
            raise NotFound("Prescription", prescription_id)
        return prescription

    def get_pending(self, prescription_id: int) -> Prescription:
        """Lock the prescription row and assert it is still pending."""
        prescription = self.get(prescription_id, lock=True)
        if prescription.status != PRESCRIPTION_PENDING:
            raise AlreadyProcessed(prescription_id, prescription.status)
        return prescription

    def _flip(self, prescription_id: int, values: dict) -> None:
        result = self.session.execute(
            update(Prescription)
            .where(Prescription.id == prescription_id)
            .where(Prescription.status == PRESCRIPTION_PENDING)
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.session.execute(
                select(Prescription.status).where(Prescription.id == prescription_id)
            ).scalar_one_or_none()
            if current is None:
                raise NotFound("Prescription", prescription_id)
            raise AlreadyProcessed(prescription_id, current)
        # keep any loaded instance in step with the row
        self.session.get(Prescription, prescription_id, populate_existing=True)

    def mark_processed(self, prescription_id: int, processor_id: int) -> None:
        self._flip(prescription_id, {"status": PRESCRIPTION_PROCESSED, "processed_by": processor_id})
        logger.info("prescription_processed", extra={"prescription_id": prescription_id, "processor_id": processor_id})

    def mark_rejected(self, prescription_id: int, processor_id: int, reason: str) -> None:
        if not reason or not reason.strip():
            raise ValidationFailed("A rejection reason is required", {"field": "reason"})
        self._flip(
            prescription_id,
            {
                "status": PRESCRIPTION_REJECTED,
                "processed_by": processor_id,
                "rejection_reason": reason.strip(),
            },
        )
        logger.info("prescription_rejected", extra={"prescription_id": prescription_id, "processor_id": processor_id})
