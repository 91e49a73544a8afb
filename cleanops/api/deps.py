from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.database import get_db
from cleanops.services.notification_service import NotificationService


def get_notifier() -> NotificationService:
    """Messaging gateway client configured from settings."""
    return NotificationService()


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Notifier = Annotated[NotificationService, Depends(get_notifier)]
