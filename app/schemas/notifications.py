from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class NotificationType(str, Enum):
    INFO = "info"
    COVENANT_BREACH = "covenant_breach"
    COVENANT_WARNING = "covenant_warning"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationPayload(BaseModel):
    """What a producer hands to the notification sink."""

    recipient_user_id: UUID
    type: NotificationType
    title: str
    message: str
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    action_url: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM


class NotificationOut(BaseModel):
    id: UUID
    type: str
    title: str
    message: str
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    action_url: str | None = None
    priority: str
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    items: list[NotificationOut]
    total: int
    unread: int


class UnreadCount(BaseModel):
    unread: int
