from sqlalchemy import Column, String, Text, Boolean, DateTime
from sqlalchemy.orm import validates
from uuid import uuid4

from automation.core.utils import utcnow
from automation.db.base import Base


NOTIFICATION_TYPES = ("info", "success", "warning", "error")


class Notification(Base):
    """In-app notification raised by a workflow step."""

    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False, default="")
    notification_type = Column(String, nullable=False, default="info")
    source = Column(String, nullable=True)
    source_id = Column(String, nullable=True, index=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    @validates("notification_type")
    def validate_notification_type(self, key, value):
        if value not in NOTIFICATION_TYPES:
            raise ValueError(f"Invalid notification type: {value!r}")
        return value

    def __repr__(self):
        return f"<Notification {self.id} ({self.notification_type})>"
