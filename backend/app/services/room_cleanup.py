from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from ..config import Settings
from ..enums import CustomRoomStatus
from ..exceptions import CustomRoomError
from ..models import CustomRoom
from .custom_room_service import CustomRoomService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


async def find_stale_open_rooms(session: AsyncSession, *, cutoff: datetime) -> list[str]:
    statement = (
        select(CustomRoom.id)
        .where(CustomRoom.status == CustomRoomStatus.OPEN)
        .where(CustomRoom.opponent_id.is_(None))
        .where(CustomRoom.created_at < cutoff)
    )
    return list((await session.execute(statement)).scalars().all())


async def expire_stale_open_rooms(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    cutoff: datetime,
    settings: Settings | None = None,
) -> int:
    """Cancel and refund OPEN rooms nobody joined before ``cutoff``. Returns the count."""
    async with session_factory() as session:
        room_ids = await find_stale_open_rooms(session, cutoff=cutoff)

    expired = 0
    notifier = NotificationService(session_factory)
    for room_id in room_ids:
        # One session per room so a failure leaves the other rooms untouched.
        async with session_factory() as session:
            service = CustomRoomService(session, notifier=notifier, settings=settings)
            try:
                room = await service.expire_room(room_id=room_id, cutoff=cutoff)
            except CustomRoomError as exc:
                logger.warning("Could not expire custom room %s: %s", room_id, exc.message)
                continue
            if room:
                expired += 1
    return expired
