import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..enums import NotificationType
from ..events.manager import ConnectionManager, manager
from ..models import CustomRoom, Notification

logger = logging.getLogger(__name__)

CUSTOM_MATCHES_LINK = "/dashboard/custom-matches"


@dataclass
class PendingNotification:
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.CUSTOM_MATCH
    link: str | None = CUSTOM_MATCHES_LINK


class NotificationService:
    """
    Fire-and-forget delivery: persists a notification row in its own session and pushes
    it to the user's websocket. Failures are logged and never reach the caller.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        connections: ConnectionManager = manager,
    ) -> None:
        self.session_factory = session_factory
        self.connections = connections

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        *,
        type: NotificationType = NotificationType.CUSTOM_MATCH,
        link: str | None = CUSTOM_MATCHES_LINK,
    ) -> Notification | None:
        try:
            async with self.session_factory() as session:
                notification = Notification(
                    user_id=user_id,
                    title=title,
                    message=message,
                    type=type,
                    link=link,
                )
                session.add(notification)
                await session.commit()
                await session.refresh(notification)

            await self.connections.send_user(
                user_id,
                {
                    "type": "notification",
                    "id": notification.id,
                    "title": title,
                    "message": message,
                    "link": link,
                },
            )
            return notification
        except Exception:  # noqa: BLE001
            logger.exception("Failed to deliver notification to %s", user_id)
            return None

    async def deliver(self, pending: list[PendingNotification]) -> None:
        for item in pending:
            await self.notify(item.user_id, item.title, item.message, type=item.type, link=item.link)

    async def room_changed(self, room: CustomRoom, event: str) -> None:
        payload = {
            "type": event,
            "room_id": room.id,
            "status": room.status.value,
            "creator_ready": room.creator_ready,
            "opponent_ready": room.opponent_ready,
        }
        try:
            await self.connections.broadcast_room(room.id, payload)
            if event in {"result_submitted", "room_resolved", "room_rejected"}:
                await self.connections.broadcast_dashboard(payload)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to broadcast %s for room %s", event, room.id)
