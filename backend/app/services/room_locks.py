"""
Per-room write serialisation.

Three layers keep concurrent requests on one room from losing updates:

- an ``asyncio.Lock`` per room id serialises writers inside this process;
- the room row is re-read with ``SELECT ... FOR UPDATE`` at the start of each attempt,
  which holds other database sessions off until commit (PostgreSQL);
- every write is a compare-and-swap on ``CustomRoom.version``. A lost race rolls the
  transaction back and the whole attempt, preconditions included, runs again.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, TypeVar

from sqlalchemy import update as sa_update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import select

from ..exceptions import RoomBusy, RoomNotFound, RoomVersionConflict
from ..models import CustomRoom

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _LockEntry:
    lock: asyncio.Lock
    holders: int = 0


class RoomLockRegistry:
    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, room_id: str) -> AsyncIterator[None]:
        entry = self._entries.get(room_id)
        if entry is None:
            entry = self._entries[room_id] = _LockEntry(asyncio.Lock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(room_id, None)

    def __len__(self) -> int:
        return len(self._entries)


room_locks = RoomLockRegistry()


async def load_room_for_update(session: AsyncSession, room_id: str) -> CustomRoom:
    statement = (
        select(CustomRoom)
        .where(CustomRoom.id == room_id)
        .with_for_update(nowait=False)
        .execution_options(populate_existing=True)
    )
    room = (await session.execute(statement)).scalar_one_or_none()
    if not room:
        raise RoomNotFound(room_id)
    return room


async def apply_changes(session: AsyncSession, room: CustomRoom, **changes) -> CustomRoom:
    """Write ``changes`` only if nobody else bumped the row's version since it was read."""
    expected_version = room.version
    changes["version"] = expected_version + 1
    changes["updated_at"] = datetime.now(timezone.utc)

    result = await session.execute(
        sa_update(CustomRoom)
        .where(CustomRoom.id == room.id, CustomRoom.version == expected_version)
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise RoomVersionConflict(room.id)

    for key, value in changes.items():
        set_committed_value(room, key, value)
    return room


async def run_room_write(
    session: AsyncSession,
    room_id: str,
    operation: Callable[[CustomRoom], Awaitable[T]],
    *,
    attempts: int,
    retry_delay: float,
) -> T:
    """
    Run ``operation`` on a freshly locked room and commit.

    ``operation`` may be invoked more than once; it must derive everything from the
    room it is handed. Domain errors roll back and propagate untouched.
    """
    attempts = max(1, attempts)
    async with room_locks.hold(room_id):
        for attempt in range(1, attempts + 1):
            try:
                room = await load_room_for_update(session, room_id)
                result = await operation(room)
                await session.commit()
                return result
            except (RoomVersionConflict, OperationalError) as exc:
                await session.rollback()
                if attempt == attempts:
                    logger.error(
                        "Giving up on room %s after %s attempts: %s", room_id, attempts, exc
                    )
                    raise RoomBusy() from exc
                logger.warning(
                    "Room %s write attempt %s/%s failed: %s. Retrying...",
                    room_id,
                    attempt,
                    attempts,
                    exc,
                )
                await asyncio.sleep(retry_delay * attempt)
            except Exception:
                await session.rollback()
                raise
    raise RoomBusy()  # pragma: no cover - loop always returns or raises
