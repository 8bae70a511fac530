"""
Notification sink.

Notifications are side-effect records, not core state. Writes join the
caller's transaction, so a payment notification disappears with the payment
if the settlement rolls back.
"""

import logging
from collections.abc import Iterable

from sqlalchemy import desc, func, or_, select, update

from ..models.notification import Notification
from ..models.user import Role
from .repository import BaseRepository
from .schema import Notification as NotificationDB
from .schema import User as UserDB
from .session import safe_flush, safe_query

logger = logging.getLogger(__name__)


class NotificationSink(BaseRepository[NotificationDB, Notification]):
    @property
    def model_class(self) -> type[NotificationDB]:
        return NotificationDB

    @property
    def response_schema(self) -> type[Notification]:
        return Notification

    def notify(
        self,
        user_id: int | None,
        message: str,
        type: str,
        related_id: int | None = None,
        related_type: str | None = None,
    ) -> None:
        """Queue one notification; ``user_id=None`` broadcasts to everyone."""
        self.session.add(
            NotificationDB(
                user_id=user_id,
                message=message,
                type=type,
                related_id=related_id,
                related_type=related_type,
            )
        )
        logger.debug("Notification queued for %s: %s", user_id or "everyone", type)

    def notify_roles(
        self,
        roles: Iterable[Role],
        message: str,
        type: str,
        related_id: int | None = None,
        related_type: str | None = None,
    ) -> int:
        """Notify every user holding one of ``roles``; returns how many were notified."""
        user_ids = safe_query(
            self.session,
            lambda s: s.execute(select(UserDB.id).where(UserDB.role.in_(list(roles))))
            .scalars()
            .all(),
            "Failed to find notification recipients",
        )
        for user_id in user_ids:
            self.notify(user_id, message, type, related_id, related_type)
        return len(user_ids)

    def list_for_user(self, user_id: int, limit: int = 50) -> list[Notification]:
        """The user's own notifications plus broadcasts, newest first."""
        safe_flush(self.session, "list notifications")
        query = (
            select(NotificationDB)
            .where(or_(NotificationDB.user_id == user_id, NotificationDB.user_id.is_(None)))
            .order_by(desc(NotificationDB.created_at), desc(NotificationDB.id))
            .limit(limit)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list notifications",
        )
        return [self._to_response_model(row) for row in rows]

    def mark_read(self, notification_id: int, user_id: int) -> bool:
        """Mark one of the user's notifications read; False if it is not theirs."""
        stmt = (
            update(NotificationDB)
            .where(NotificationDB.id == notification_id, NotificationDB.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), "Failed to mark notification read"
        )
        return result.rowcount == 1

    def unread_count(self, user_id: int) -> int:
        safe_flush(self.session, "count notifications")
        query = (
            select(func.count())
            .select_from(NotificationDB)
            .where(NotificationDB.user_id == user_id, NotificationDB.is_read.is_(False))
        )
        return (
            safe_query(
                self.session, lambda s: s.execute(query).scalar(), "Failed to count notifications"
            )
            or 0
        )
