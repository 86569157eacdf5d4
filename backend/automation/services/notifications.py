import logging
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from automation.models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Best-effort in-app notifications for step handlers.

    Each notification is written in its own session so a failure here never
    disturbs the executor's transaction; errors are logged and ``None`` is
    returned.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def notify(
        self,
        tenant_id: str,
        title: str,
        message: str,
        notification_type: str = "info",
        source: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Create a notification.

        Args:
            tenant_id: Tenant that owns the notification
            title: Short title
            message: Body text
            notification_type: One of info, success, warning, error
            source: Subsystem raising the notification (e.g. "workflow")
            source_id: ID of the object that raised it

        Returns:
            The notification ID, or None if it could not be stored
        """
        try:
            async with self.session_factory() as db:
                notification = Notification(
                    tenant_id=tenant_id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    source=source,
                    source_id=source_id,
                )
                db.add(notification)
                await db.commit()
                return notification.id
        except Exception as e:
            logger.warning(f"Failed to create notification '{title}' for tenant {tenant_id}: {str(e)}")
            return None


async def list_notifications(
    db: AsyncSession,
    tenant_id: str,
    skip: int = 0,
    limit: int = 100,
    unread_only: bool = False,
) -> List[Notification]:
    """List a tenant's notifications, newest first."""
    query = select(Notification).where(Notification.tenant_id == tenant_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))

    result = await db.execute(query.order_by(desc(Notification.created_at)).offset(skip).limit(limit))
    return list(result.scalars().all())
