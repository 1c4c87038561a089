import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..config import Settings, get_settings
from ..enums import CustomRoomStatus, TransactionType, WinnerSide
from ..exceptions import (
    EvidenceRequired,
    InvalidEvidence,
    InvalidRoomConfiguration,
    InvalidRoomState,
    NotAParticipant,
    NotRoomCreator,
    NotRoomMaker,
    RoomNotFound,
    RoomNotJoinable,
    SelfJoinForbidden,
)
from ..game.payout import MAX_MONEY, MAX_ODDS, compute_payout, to_money, to_odds
from ..game.state_machine import (
    CREDENTIAL_STATUSES,
    ensure_transition,
    is_participant,
    is_terminal,
    maker_user_id,
    side_of,
)
from ..models import CustomRoom, CustomRoomReport, User
from ..schemas.custom_room import CustomRoomCreate
from .notification_service import NotificationService, PendingNotification
from .room_locks import apply_changes, run_room_write
from .storage import EvidenceFile, EvidenceStorage, get_evidence_storage
from .wallet_service import WalletService, refund_reference, stake_reference

logger = logging.getLogger(__name__)

OPEN_ROOMS_LIMIT = 50
MY_ROOMS_LIMIT = 30
MAX_REPORT_EVIDENCE = 5
CANCELLABLE_STATUSES = frozenset({CustomRoomStatus.OPEN, CustomRoomStatus.WAITING_JOIN})


class CustomRoomService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        storage: EvidenceStorage | None = None,
        notifier: NotificationService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.wallet = WalletService(session)
        self.storage = storage or get_evidence_storage()
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

    # ------------------------------------------------------------------ reads

    async def get_room(self, room_id: str) -> CustomRoom:
        room = await self.session.get(CustomRoom, room_id, populate_existing=True)
        if not room:
            raise RoomNotFound(room_id)
        return room

    async def get_room_for_viewer(self, room_id: str, viewer: User) -> CustomRoom:
        room = await self.get_room(room_id)
        if not viewer.is_admin and not is_participant(room, viewer.id):
            raise NotAParticipant()
        return room

    async def list_open_rooms(self, viewer: User) -> Sequence[CustomRoom]:
        statement = (
            select(CustomRoom)
            .where(CustomRoom.status == CustomRoomStatus.OPEN)
            .where(CustomRoom.opponent_id.is_(None))
            .where(CustomRoom.creator_id != viewer.id)
            .order_by(CustomRoom.created_at.desc())
            .limit(OPEN_ROOMS_LIMIT)
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def list_my_rooms(self, user: User) -> Sequence[CustomRoom]:
        statement = (
            select(CustomRoom)
            .where(or_(CustomRoom.creator_id == user.id, CustomRoom.opponent_id == user.id))
            .order_by(CustomRoom.created_at.desc())
            .limit(MY_ROOMS_LIMIT)
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    # ---------------------------------------------------------------- create

    def _validate_stakes(self, entry_fee: Decimal, odds: Decimal, rounds: int) -> None:
        if entry_fee is None or not Decimal(entry_fee).is_finite() or entry_fee < 0:
            raise InvalidRoomConfiguration("Invalid entry fee")
        if odds is None or not Decimal(odds).is_finite() or odds <= 0:
            raise InvalidRoomConfiguration("Invalid odds")
        if rounds is None or rounds < 1:
            raise InvalidRoomConfiguration("Invalid rounds")

    async def create_room(self, *, creator: User, payload: CustomRoomCreate) -> CustomRoom:
        odds = payload.odds if payload.odds is not None else self.settings.default_odds
        self._validate_stakes(payload.entry_fee, odds, payload.rounds)
        entry_fee = to_money(payload.entry_fee)
        odds = to_odds(odds)
        if odds <= 0 or odds > MAX_ODDS:
            raise InvalidRoomConfiguration("Invalid odds")
        if entry_fee > MAX_MONEY:
            raise InvalidRoomConfiguration("Invalid entry fee")
        payout = compute_payout(entry_fee, odds)
        if payout > MAX_MONEY:
            raise InvalidRoomConfiguration("Payout is too large")

        room = CustomRoom(
            type=payload.type,
            status=CustomRoomStatus.OPEN,
            creator_id=creator.id,
            team_size=payload.team_size,
            rounds=payload.rounds,
            throwable_limit=payload.throwable_limit,
            character_skill=payload.character_skill,
            headshot_only=payload.headshot_only,
            gun_attributes=payload.gun_attributes,
            coin_setting=payload.coin_setting,
            room_maker=payload.room_maker,
            entry_fee=entry_fee,
            odds=odds,
            payout=payout,
        )
        self.session.add(room)
        try:
            await self.session.flush()
            await self.wallet.debit(
                creator.id,
                entry_fee,
                reference=stake_reference(room.id, creator.id),
                description=f"Custom room stake ({room.id})",
                room_id=room.id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Custom room %s created by %s (fee=%s odds=%s payout=%s)",
            room.id,
            creator.id,
            room.entry_fee,
            room.odds,
            room.payout,
        )
        if self.notifier:
            await self.notifier.room_changed(room, "room_created")
        return room

    # ------------------------------------------------------------------ join

    async def join_room(self, *, room_id: str, user: User) -> CustomRoom:
        pending: list[PendingNotification] = []
        user_id, username = user.id, user.username

        async def operation(room: CustomRoom) -> CustomRoom:
            pending.clear()
            if room.status != CustomRoomStatus.OPEN or room.opponent_id is not None:
                raise RoomNotJoinable()
            if room.creator_id == user_id:
                raise SelfJoinForbidden()

            await apply_changes(
                self.session,
                room,
                opponent_id=user_id,
                status=ensure_transition(room.status, CustomRoomStatus.WAITING_JOIN),
            )
            await self.wallet.debit(
                user_id,
                room.entry_fee,
                reference=stake_reference(room.id, user_id),
                description=f"Custom room stake ({room.id})",
                room_id=room.id,
            )
            pending.append(
                PendingNotification(
                    room.creator_id,
                    "Opponent joined",
                    f"{username} joined your custom room. Mark ready to continue.",
                )
            )
            return room

        room = await self._write(room_id, operation)
        logger.info("User %s joined custom room %s", user_id, room.id)
        await self._announce(room, "opponent_joined", pending)
        return room

    # ----------------------------------------------------------------- ready

    async def mark_ready(self, *, room_id: str, user: User) -> CustomRoom:
        pending: list[PendingNotification] = []
        user_id, username = user.id, user.username
        changed = False

        async def operation(room: CustomRoom) -> CustomRoom:
            nonlocal changed
            pending.clear()
            changed = False
            side = side_of(room, user_id)
            if side is None:
                raise NotAParticipant()
            if is_terminal(room.status):
                raise InvalidRoomState("Room is closed")
            if room.status == CustomRoomStatus.OPEN:
                raise InvalidRoomState("Opponent has not joined yet")
            if room.status != CustomRoomStatus.WAITING_JOIN:
                # Already past the ready gate; confirming again is harmless.
                return room

            flag = "creator_ready" if side == WinnerSide.CREATOR else "opponent_ready"
            if getattr(room, flag):
                return room

            changes = {flag: True}
            creator_ready = room.creator_ready or side == WinnerSide.CREATOR
            opponent_ready = room.opponent_ready or side == WinnerSide.OPPONENT
            if creator_ready and opponent_ready:
                changes["status"] = ensure_transition(room.status, CustomRoomStatus.READY_TO_START)

            await apply_changes(self.session, room, **changes)
            changed = True

            other_id = room.opponent_id if side == WinnerSide.CREATOR else room.creator_id
            if room.status == CustomRoomStatus.READY_TO_START:
                for participant_id in (room.creator_id, room.opponent_id):
                    pending.append(
                        PendingNotification(
                            participant_id,
                            "Match ready",
                            "Both players are ready. Waiting for the room maker to share room details.",
                        )
                    )
            elif other_id:
                pending.append(
                    PendingNotification(other_id, "Opponent ready", f"{username} is ready.")
                )
            return room

        room = await self._write(room_id, operation)
        if changed:
            await self._announce(room, "ready_updated", pending)
        return room

    # ----------------------------------------------------------- credentials

    async def set_credentials(
        self,
        *,
        room_id: str,
        user: User,
        room_code: str,
        room_password: str | None = None,
    ) -> CustomRoom:
        code = (room_code or "").strip()
        password = (room_password or "").strip() or None
        pending: list[PendingNotification] = []
        user_id = user.id

        async def operation(room: CustomRoom) -> CustomRoom:
            pending.clear()
            if not is_participant(room, user_id):
                raise NotAParticipant()
            if maker_user_id(room) != user_id:
                raise NotRoomMaker()
            if room.status not in CREDENTIAL_STATUSES:
                raise InvalidRoomState("Both players must be ready before room details are shared")
            if not code:
                raise InvalidRoomConfiguration("Room ID is required")

            changes = {"room_code": code[:60], "room_password": password[:60] if password else None}
            if room.status == CustomRoomStatus.READY_TO_START:
                changes["status"] = ensure_transition(room.status, CustomRoomStatus.STARTED)
            await apply_changes(self.session, room, **changes)

            other_id = room.opponent_id if user_id == room.creator_id else room.creator_id
            pending.append(
                PendingNotification(
                    other_id,
                    "Room details shared",
                    "The room ID and password are available. Join the match in game.",
                )
            )
            return room

        room = await self._write(room_id, operation)
        await self._announce(room, "credentials_published", pending)
        return room

    # ---------------------------------------------------------------- result

    async def submit_result(
        self,
        *,
        room_id: str,
        user: User,
        winner_side: WinnerSide,
        evidence: EvidenceFile | None,
    ) -> CustomRoom:
        pending: list[PendingNotification] = []
        user_id = user.id
        screenshot_url: str | None = None

        async def operation(room: CustomRoom) -> CustomRoom:
            nonlocal screenshot_url
            pending.clear()
            if not is_participant(room, user_id):
                raise NotAParticipant()
            if evidence is None or evidence.is_empty:
                raise EvidenceRequired()
            if room.status != CustomRoomStatus.STARTED:
                raise InvalidRoomState("Room not started")

            if screenshot_url is None:
                screenshot_url = await self.storage.upload(evidence, folder="custom-room-results")

            status = ensure_transition(room.status, CustomRoomStatus.RESULT_SUBMITTED)
            status = ensure_transition(status, CustomRoomStatus.UNDER_REVIEW)
            await apply_changes(
                self.session,
                room,
                status=status,
                result_screenshot_url=screenshot_url,
                winner_side=winner_side,
                result_submitted_by=user_id,
            )

            other_id = room.opponent_id if user_id == room.creator_id else room.creator_id
            pending.append(
                PendingNotification(
                    other_id,
                    "Result submitted",
                    "A result was submitted for your custom match and is under admin review.",
                )
            )
            return room

        room = await self._write(room_id, operation)
        logger.info(
            "Result for custom room %s submitted by %s (claim=%s)", room.id, user_id, winner_side.value
        )
        await self._announce(room, "result_submitted", pending)
        return room

    # ---------------------------------------------------------------- cancel

    async def _refund_participants(self, room: CustomRoom) -> None:
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

    async def _cancel(self, room: CustomRoom) -> CustomRoom:
        if room.status not in CANCELLABLE_STATUSES or room.opponent_ready:
            raise InvalidRoomState("Room can no longer be cancelled")
        await apply_changes(
            self.session,
            room,
            status=ensure_transition(room.status, CustomRoomStatus.CANCELLED),
            cancelled_at=datetime.now(timezone.utc),
        )
        await self._refund_participants(room)
        return room

    async def cancel_room(self, *, room_id: str, user: User) -> CustomRoom:
        pending: list[PendingNotification] = []
        user_id = user.id

        async def operation(room: CustomRoom) -> CustomRoom:
            pending.clear()
            if not is_participant(room, user_id):
                raise NotAParticipant()
            if user_id != room.creator_id:
                raise NotRoomCreator()
            await self._cancel(room)
            if room.opponent_id:
                pending.append(
                    PendingNotification(
                        room.opponent_id,
                        "Match cancelled",
                        "The creator cancelled the custom match. Your entry fee was refunded.",
                    )
                )
            return room

        room = await self._write(room_id, operation)
        logger.info("Custom room %s cancelled by creator %s", room.id, user_id)
        await self._announce(room, "room_cancelled", pending)
        return room

    async def expire_room(self, *, room_id: str, cutoff: datetime) -> Optional[CustomRoom]:
        """Cancel an OPEN room created before ``cutoff``; returns None if it moved on."""
        pending: list[PendingNotification] = []

        async def operation(room: CustomRoom) -> Optional[CustomRoom]:
            pending.clear()
            created_at = room.created_at
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            if room.status != CustomRoomStatus.OPEN or created_at >= cutoff:
                return None
            await self._cancel(room)
            pending.append(
                PendingNotification(
                    room.creator_id,
                    "Match expired",
                    "Nobody joined your custom room in time. Your entry fee was refunded.",
                )
            )
            return room

        room = await self._write(room_id, operation)
        if room:
            logger.info("Custom room %s expired without an opponent", room.id)
            await self._announce(room, "room_cancelled", pending)
        return room

    # ---------------------------------------------------------------- report

    async def report_room(
        self,
        *,
        room_id: str,
        user: User,
        reason: str,
        description: str,
        evidence: list[EvidenceFile] | None = None,
    ) -> CustomRoomReport:
        room = await self.get_room(room_id)
        if not is_participant(room, user.id):
            raise NotAParticipant()

        reason = (reason or "").strip()
        description = (description or "").strip()
        if not reason or not description:
            raise InvalidRoomConfiguration("Reason and description required")

        files = [item for item in (evidence or []) if not item.is_empty]
        if len(files) > MAX_REPORT_EVIDENCE:
            raise InvalidEvidence(f"At most {MAX_REPORT_EVIDENCE} evidence files are allowed")

        urls = [await self.storage.upload(item, folder="custom-room-reports") for item in files]
        reported_user_id = room.opponent_id if user.id == room.creator_id else room.creator_id
        report = CustomRoomReport(
            room_id=room.id,
            reporter_id=user.id,
            reported_user_id=reported_user_id,
            reason=reason[:200],
            description=description[:2000],
            evidence=urls,
        )
        self.session.add(report)
        await self.session.commit()
        await self.session.refresh(report)
        logger.info("Report %s filed on custom room %s by %s", report.id, room.id, user.id)
        return report
