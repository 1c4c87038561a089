import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..config import Settings, get_settings
from ..enums import CustomRoomStatus, RejectRefundPolicy, TransactionType, WinnerSide
from ..exceptions import InvalidRoomState, RoomAlreadyResolved, RoomNotUnderReview
from ..game.state_machine import ensure_transition, is_terminal, user_for_side
from ..models import CustomRoom, CustomRoomReport, User
from .notification_service import NotificationService, PendingNotification
from .room_locks import apply_changes, run_room_write
from .wallet_service import WalletService, payout_reference, refund_reference

logger = logging.getLogger(__name__)

REVIEW_QUEUE_LIMIT = 50
REPORTS_PER_ROOM = 5


@dataclass
class ReviewEntry:
    room: CustomRoom
    creator: User
    opponent: User | None
    reports: list[CustomRoomReport] = field(default_factory=list)


def _ensure_reviewable(room: CustomRoom) -> None:
    if is_terminal(room.status):
        raise RoomAlreadyResolved()
    if room.status != CustomRoomStatus.UNDER_REVIEW:
        raise RoomNotUnderReview()


class ArbitrationService:
    """Admin side of a custom room: the review queue and the final ruling."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        notifier: NotificationService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.wallet = WalletService(session)
        self.notifier = notifier

    async def _write(self, room_id: str, operation):
        return await run_room_write(
            self.session,
            room_id,
            operation,
            attempts=self.settings.room_write_attempts,
            retry_delay=self.settings.room_write_retry_delay_seconds,
        )

    async def _announce(self, room: CustomRoom, event: str, pending: list[PendingNotification]) -> None:
        if not self.notifier:
            return
        await self.notifier.room_changed(room, event)
        await self.notifier.deliver(pending)

    async def list_for_review(self) -> list[ReviewEntry]:
        statement = (
            select(CustomRoom)
            .where(CustomRoom.status == CustomRoomStatus.UNDER_REVIEW)
            .order_by(CustomRoom.updated_at.desc())
            .limit(REVIEW_QUEUE_LIMIT)
        )
        rooms = (await self.session.execute(statement)).scalars().all()
        if not rooms:
            return []

        user_ids = {room.creator_id for room in rooms} | {
            room.opponent_id for room in rooms if room.opponent_id
        }
        users = (await self.session.execute(select(User).where(User.id.in_(user_ids)))).scalars().all()
        users_by_id = {user.id: user for user in users}

        entries: list[ReviewEntry] = []
        for room in rooms:
            entries.append(
                ReviewEntry(
                    room=room,
                    creator=users_by_id[room.creator_id],
                    opponent=users_by_id.get(room.opponent_id) if room.opponent_id else None,
                    reports=list(await self._reports_against(room)),
                )
            )
        return entries

    async def _reports_against(self, room: CustomRoom) -> Sequence[CustomRoomReport]:
        """Latest reports naming either participant, across all of their rooms."""
        participants = [user_id for user_id in (room.creator_id, room.opponent_id) if user_id]
        statement = (
            select(CustomRoomReport)
            .where(
                or_(
                    CustomRoomReport.room_id == room.id,
                    CustomRoomReport.reported_user_id.in_(participants),
                )
            )
            .order_by(CustomRoomReport.created_at.desc())
            .limit(REPORTS_PER_ROOM)
        )
        return (await self.session.execute(statement)).scalars().all()

    async def resolve(self, *, room_id: str, admin: User, winner_side: WinnerSide) -> CustomRoom:
        pending: list[PendingNotification] = []
        admin_id = admin.id

        async def operation(room: CustomRoom) -> CustomRoom:
            pending.clear()
            _ensure_reviewable(room)
            winner_id = user_for_side(room, winner_side)
            if not winner_id:
                raise InvalidRoomState("Room has no opponent")

            await apply_changes(
                self.session,
                room,
                status=ensure_transition(room.status, CustomRoomStatus.RESOLVED),
                ruled_winner_side=winner_side,
                resolved_by=admin_id,
                resolved_at=datetime.now(timezone.utc),
            )
            # Winner receives the frozen payout, never the raw pot.
            await self.wallet.credit(
                winner_id,
                room.payout,
                reference=payout_reference(room.id, winner_id),
                type=TransactionType.CUSTOM_MATCH_PAYOUT,
                description=f"Custom room payout ({room.id})",
                room_id=room.id,
            )

            loser_id = room.opponent_id if winner_id == room.creator_id else room.creator_id
            pending.append(
                PendingNotification(
                    winner_id,
                    "You won your custom match",
                    f"Payout of {room.payout} has been credited to your wallet.",
                )
            )
            pending.append(
                PendingNotification(
                    loser_id,
                    "Custom match resolved",
                    "An admin reviewed the result. Better luck next match.",
                )
            )
            return room

        room = await self._write(room_id, operation)
        logger.info(
            "Admin %s resolved custom room %s for %s (claim=%s payout=%s)",
            admin_id,
            room.id,
            winner_side.value,
            room.winner_side.value if room.winner_side else None,
            room.payout,
        )
        await self._announce(room, "room_resolved", pending)
        return room

    async def reject(self, *, room_id: str, admin: User, reason: str | None = None) -> CustomRoom:
        policy = self.settings.reject_refund_policy
        reason = (reason or "").strip() or None
        pending: list[PendingNotification] = []
        admin_id = admin.id

        async def operation(room: CustomRoom) -> CustomRoom:
            pending.clear()
            _ensure_reviewable(room)

            await apply_changes(
                self.session,
                room,
                status=ensure_transition(room.status, CustomRoomStatus.REJECTED),
                resolved_by=admin_id,
                resolved_at=datetime.now(timezone.utc),
                rejection_reason=reason[:500] if reason else None,
            )

            if policy == RejectRefundPolicy.REFUND_BOTH:
                for participant_id in (room.creator_id, room.opponent_id):
                    if not participant_id:
                        continue
                    await self.wallet.credit(
                        participant_id,
                        room.entry_fee,
                        reference=refund_reference(room.id, participant_id),
                        type=TransactionType.CUSTOM_MATCH_REFUND,
                        description=f"Custom room refund ({room.id})",
                        room_id=room.id,
                    )

            refunded = policy == RejectRefundPolicy.REFUND_BOTH
            message = "An admin rejected the submitted result."
            if reason:
                message = f"{message} Reason: {reason}"
            if refunded:
                message = f"{message} Your entry fee was refunded."
            for participant_id in (room.creator_id, room.opponent_id):
                if participant_id:
                    pending.append(PendingNotification(participant_id, "Custom match rejected", message))
            return room

        room = await self._write(room_id, operation)
        logger.info(
            "Admin %s rejected custom room %s (policy=%s reason=%s)",
            admin_id,
            room.id,
            policy.value,
            reason,
        )
        await self._announce(room, "room_rejected", pending)
        return room
