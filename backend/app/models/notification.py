from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import Field, SQLModel

from ..enums import NotificationType


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=120)
    message: str
    type: NotificationType = Field(default=NotificationType.CUSTOM_MATCH)
    link: str | None = Field(default=None)
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
