from decimal import Decimal

import pytest
from sqlmodel import func, select

from app.config import Settings
from app.enums import CustomRoomStatus, RejectRefundPolicy, RoomMaker, TransactionType, WinnerSide
from app.exceptions import RoomAlreadyResolved, RoomNotUnderReview
from app.models import Notification, WalletTransaction
from app.services.arbitration_service import ArbitrationService
from conftest import room_payload, screenshot


async def _room_under_review(room_service, creator, opponent, *, claim=WinnerSide.CREATOR) -> str:
    room = await room_service.create_room(creator=creator, payload=room_payload())
    room_id, room_maker = room.id, room.room_maker
    await room_service.join_room(room_id=room_id, user=opponent)
    await room_service.mark_ready(room_id=room_id, user=creator)
    await room_service.mark_ready(room_id=room_id, user=opponent)
    maker = creator if room_maker == RoomMaker.ME else opponent
    await room_service.set_credentials(room_id=room_id, user=maker, room_code="12345")
    submitter = creator if claim == WinnerSide.CREATOR else opponent
    await room_service.submit_result(
        room_id=room_id, user=submitter, winner_side=claim, evidence=screenshot()
    )
    return room_id


async def _ledger_total(session, room_id, kind) -> Decimal:
    statement = select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
        WalletTransaction.room_id == room_id, WalletTransaction.type == kind
    )
    return Decimal((await session.execute(statement)).scalar_one())


async def test_admin_ruling_overrides_the_claim(
    room_service, arbitration, make_user, balance_of, session
):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    admin = await make_user("0", is_admin=True)
    room_id = await _room_under_review(room_service, creator, opponent, claim=WinnerSide.CREATOR)

    room = await arbitration.resolve(room_id=room_id, admin=admin, winner_side=WinnerSide.OPPONENT)

    assert room.status == CustomRoomStatus.RESOLVED
    assert room.winner_side == WinnerSide.CREATOR
    assert room.ruled_winner_side == WinnerSide.OPPONENT
    assert room.resolved_by == admin.id
    assert room.resolved_at is not None
    assert await balance_of(opponent) == Decimal("1080")
    assert await balance_of(creator) == Decimal("900")
    assert await _ledger_total(session, room_id, TransactionType.CUSTOM_MATCH_STAKE) == Decimal("200")
    assert await _ledger_total(session, room_id, TransactionType.CUSTOM_MATCH_PAYOUT) == Decimal("180")


async def test_a_room_is_settled_only_once(room_service, arbitration, make_user, balance_of):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    admin = await make_user("0", is_admin=True)
    room_id = await _room_under_review(room_service, creator, opponent)
    await arbitration.resolve(room_id=room_id, admin=admin, winner_side=WinnerSide.CREATOR)

    with pytest.raises(RoomAlreadyResolved):
        await arbitration.resolve(room_id=room_id, admin=admin, winner_side=WinnerSide.CREATOR)
    with pytest.raises(RoomAlreadyResolved):
        await arbitration.reject(room_id=room_id, admin=admin, reason="late")

    assert await balance_of(creator) == Decimal("1080")
    assert await balance_of(opponent) == Decimal("900")


async def test_rooms_before_review_cannot_be_ruled(room_service, arbitration, make_user):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    admin = await make_user("0", is_admin=True)
    room = await room_service.create_room(creator=creator, payload=room_payload())
    room_id = room.id
    await room_service.join_room(room_id=room_id, user=opponent)

    with pytest.raises(RoomNotUnderReview):
        await arbitration.resolve(room_id=room_id, admin=admin, winner_side=WinnerSide.CREATOR)
    with pytest.raises(RoomNotUnderReview):
        await arbitration.reject(room_id=room_id, admin=admin)


async def test_reject_refunds_both_by_default(room_service, arbitration, make_user, balance_of):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    admin = await make_user("0", is_admin=True)
    room_id = await _room_under_review(room_service, creator, opponent)

    room = await arbitration.reject(room_id=room_id, admin=admin, reason="  Screenshot is cropped ")

    assert room.status == CustomRoomStatus.REJECTED
    assert room.rejection_reason == "Screenshot is cropped"
    assert room.ruled_winner_side is None
    assert await balance_of(creator) == Decimal("1000")
    assert await balance_of(opponent) == Decimal("1000")


async def test_reject_can_forfeit_stakes(session, room_service, notifier, make_user, balance_of):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    admin = await make_user("0", is_admin=True)
    room_id = await _room_under_review(room_service, creator, opponent)
    forfeit = ArbitrationService(
        session,
        notifier=notifier,
        settings=Settings(
            _env_file=None,
            room_write_retry_delay_seconds=0.0,
            reject_refund_policy=RejectRefundPolicy.FORFEIT,
        ),
    )

    room = await forfeit.reject(room_id=room_id, admin=admin)

    assert room.status == CustomRoomStatus.REJECTED
    assert room.rejection_reason is None
    assert await balance_of(creator) == Decimal("900")
    assert await balance_of(opponent) == Decimal("900")
    assert await _ledger_total(session, room_id, TransactionType.CUSTOM_MATCH_REFUND) == Decimal("0")


async def test_review_queue_carries_participants_and_reports(room_service, arbitration, make_user):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    room_id = await _room_under_review(room_service, creator, opponent)
    report = await room_service.report_room(
        room_id=room_id,
        user=opponent,
        reason="Wrong result",
        description="I won the last round.",
        evidence=[screenshot("proof.png")],
    )
    other_creator = await make_user("1000")
    await room_service.create_room(creator=other_creator, payload=room_payload())

    entries = await arbitration.list_for_review()

    assert [entry.room.id for entry in entries] == [room_id]
    entry = entries[0]
    assert entry.creator.id == creator.id
    assert entry.opponent.id == opponent.id
    assert [item.id for item in entry.reports] == [report.id]


async def test_participants_are_notified_of_the_ruling(
    room_service, arbitration, make_user, session_factory
):
    creator = await make_user("1000")
    opponent = await make_user("1000")
    admin = await make_user("0", is_admin=True)
    room_id = await _room_under_review(room_service, creator, opponent)

    await arbitration.resolve(room_id=room_id, admin=admin, winner_side=WinnerSide.CREATOR)

    async with session_factory() as check:
        titles = (
            await check.execute(
                select(Notification.title)
                .where(Notification.user_id == creator.id)
                .order_by(Notification.created_at)
            )
        ).scalars().all()
    assert "You won your custom match" in titles
