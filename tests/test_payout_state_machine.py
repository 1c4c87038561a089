from decimal import Decimal

import pytest

from app.enums import CustomRoomStatus, RoomMaker, WinnerSide
from app.exceptions import InvalidRoomState
from app.game.payout import compute_payout, to_money
from app.game.state_machine import (
    can_publish_credentials,
    can_transition,
    ensure_transition,
    is_terminal,
    maker_user_id,
    side_of,
    user_for_side,
)
from app.models import CustomRoom


def _room(**overrides) -> CustomRoom:
    values = {
        "creator_id": "creator",
        "opponent_id": "opponent",
        "room_maker": RoomMaker.ME,
        "status": CustomRoomStatus.READY_TO_START,
        "entry_fee": Decimal("100.00"),
        "odds": Decimal("1.8"),
        "payout": Decimal("180.00"),
    }
    values.update(overrides)
    return CustomRoom(**values)


@pytest.mark.parametrize(
    ("entry_fee", "odds", "expected"),
    [
        (Decimal("100"), Decimal("1.8"), Decimal("180.00")),
        (Decimal("10.01"), Decimal("1.5"), Decimal("15.02")),
        (Decimal("0.05"), Decimal("1.5"), Decimal("0.08")),
        (Decimal("0"), Decimal("2"), Decimal("0.00")),
    ],
)
def test_compute_payout_rounds_half_up(entry_fee, odds, expected):
    assert compute_payout(entry_fee, odds) == expected


def test_compute_payout_rejects_bad_input():
    with pytest.raises(ValueError):
        compute_payout(Decimal("-1"), Decimal("1.8"))
    with pytest.raises(ValueError):
        compute_payout(Decimal("100"), Decimal("0"))


def test_to_money():
    assert to_money("12.345") == Decimal("12.35")
    assert to_money(7) == Decimal("7.00")
    with pytest.raises(ValueError):
        to_money("abc")
    with pytest.raises(ValueError):
        to_money("NaN")


def test_happy_path_transitions_are_allowed():
    path = [
        CustomRoomStatus.OPEN,
        CustomRoomStatus.WAITING_JOIN,
        CustomRoomStatus.READY_TO_START,
        CustomRoomStatus.STARTED,
        CustomRoomStatus.RESULT_SUBMITTED,
        CustomRoomStatus.UNDER_REVIEW,
        CustomRoomStatus.RESOLVED,
    ]
    for current, target in zip(path, path[1:]):
        assert ensure_transition(current, target) == target


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (CustomRoomStatus.OPEN, CustomRoomStatus.STARTED),
        (CustomRoomStatus.READY_TO_START, CustomRoomStatus.CANCELLED),
        (CustomRoomStatus.STARTED, CustomRoomStatus.RESOLVED),
        (CustomRoomStatus.UNDER_REVIEW, CustomRoomStatus.CANCELLED),
        (CustomRoomStatus.RESOLVED, CustomRoomStatus.REJECTED),
        (CustomRoomStatus.CANCELLED, CustomRoomStatus.OPEN),
    ],
)
def test_forbidden_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidRoomState):
        ensure_transition(current, target)


def test_terminal_statuses():
    terminal = {status for status in CustomRoomStatus if is_terminal(status)}
    assert terminal == {
        CustomRoomStatus.RESOLVED,
        CustomRoomStatus.REJECTED,
        CustomRoomStatus.CANCELLED,
    }
    for status in terminal:
        assert not any(can_transition(status, target) for target in CustomRoomStatus)


def test_sides_map_to_participants():
    room = _room()
    assert side_of(room, "creator") == WinnerSide.CREATOR
    assert side_of(room, "opponent") == WinnerSide.OPPONENT
    assert side_of(room, "stranger") is None
    assert user_for_side(room, WinnerSide.OPPONENT) == "opponent"


def test_room_maker_follows_the_creators_choice():
    assert maker_user_id(_room(room_maker=RoomMaker.ME)) == "creator"
    assert maker_user_id(_room(room_maker=RoomMaker.OPPONENT)) == "opponent"
    assert maker_user_id(_room(room_maker=RoomMaker.OPPONENT, opponent_id=None)) is None


def test_credentials_need_the_maker_and_a_ready_room():
    assert can_publish_credentials(_room(), "creator")
    assert can_publish_credentials(_room(status=CustomRoomStatus.STARTED), "creator")
    assert not can_publish_credentials(_room(), "opponent")
    assert not can_publish_credentials(_room(status=CustomRoomStatus.WAITING_JOIN), "creator")
    assert not can_publish_credentials(_room(status=CustomRoomStatus.UNDER_REVIEW), "creator")
