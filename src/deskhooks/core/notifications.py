"""User-facing notifications.

Operators see delivery problems through short notifications (title,
description, variant). The center logs each one and keeps the most
recent in memory for the API to serve.
"""

from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, List, Optional
import logging
import uuid

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationVariant(str, Enum):
    """Display variant of a notification."""

    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


class Notification(BaseModel):
    """A single notification shown to an operator."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: Optional[str] = None
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationCenter:
    """Collects notifications published by the delivery components."""

    def __init__(self, max_size: int = 100):
        self._notifications: Deque[Notification] = deque(maxlen=max_size)

    def notify(
        self,
        title: str,
        description: Optional[str] = None,
        variant: NotificationVariant = NotificationVariant.DEFAULT,
    ) -> Notification:
        """Publish a notification.

        Destructive notifications are logged at WARNING, others at INFO.
        """
        notification = Notification(title=title, description=description, variant=variant)
        self._notifications.append(notification)

        level = logging.WARNING if variant == NotificationVariant.DESTRUCTIVE else logging.INFO
        logger.log(level, f"{title}: {description}" if description else title)
        return notification

    def recent(self, limit: int = 20) -> List[Notification]:
        """Most recent notifications, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._notifications))[:limit]

    def clear(self) -> int:
        count = len(self._notifications)
        self._notifications.clear()
        return count


_center: Optional[NotificationCenter] = None


def get_notification_center() -> NotificationCenter:
    """Get the process-wide notification center."""
    global _center
    if _center is None:
        from .settings import get_settings

        _center = NotificationCenter(max_size=get_settings().notification_history_size)
    return _center
