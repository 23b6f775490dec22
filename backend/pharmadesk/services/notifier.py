"""
Notifications: best-effort records written after the business transaction commits.
notify() never raises; a failure is logged and the caller carries on.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from pharmadesk.db import read_session
from pharmadesk.errors import NotFound
from pharmadesk.models import MANAGER, NOTIFICATION_TYPES, Notification, User

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def notify(self, user_id: int, title: str, message: str, type: str) -> Optional[Notification]:
        """Create a notification in its own transaction. Returns None on failure."""
        try:
            if type not in NOTIFICATION_TYPES:
                raise ValueError(f"Unknown notification type: {type}")
            with self.session_factory() as db:
                with db.begin():
                    row = Notification(user_id=user_id, title=title, message=message, type=type)
                    db.add(row)
                logger.info("notification_created", extra={"user_id": user_id, "type": type})
                return row
        except Exception:
            logger.exception("notification_failed", extra={"user_id": user_id, "type": type, "title": title})
            return None

    def notify_role(self, role: str, title: str, message: str, type: str) -> int:
        """Notify every active user holding role. Returns how many were created."""
        try:
            with read_session(self.session_factory) as db:
                user_ids = list(
                    db.execute(select(User.id).where(User.role == role, User.is_active.is_(True))).scalars()
                )
        except Exception:
            logger.exception("notification_recipients_failed", extra={"role": role})
            return 0
        return sum(1 for uid in user_ids if self.notify(uid, title, message, type) is not None)

    def notify_managers(self, title: str, message: str, type: str) -> int:
        return self.notify_role(MANAGER, title, message, type)

    def list_for_user(self, user_id: int, unread_only: bool = False) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        with read_session(self.session_factory) as db:
            return list(db.execute(stmt).scalars())

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        """Set read_at once; a second call keeps the first timestamp."""
        with self.session_factory() as db:
            with db.begin():
                row = db.execute(
                    select(Notification).where(
                        Notification.id == notification_id, Notification.user_id == user_id
                    )
                ).scalar_one_or_none()
                if row is None:
                    raise NotFound("Notification", notification_id)
                if row.read_at is None:
                    row.read_at = datetime.utcnow()
            return row
