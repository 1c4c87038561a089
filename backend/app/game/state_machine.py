from ..enums import TERMINAL_STATUSES, CustomRoomStatus, RoomMaker, WinnerSide
from ..exceptions import InvalidRoomState
from ..models import CustomRoom

ALLOWED_TRANSITIONS: dict[CustomRoomStatus, frozenset[CustomRoomStatus]] = {
    CustomRoomStatus.OPEN: frozenset({CustomRoomStatus.WAITING_JOIN, CustomRoomStatus.CANCELLED}),
    CustomRoomStatus.WAITING_JOIN: frozenset(
        {CustomRoomStatus.READY_TO_START, CustomRoomStatus.CANCELLED}
    ),
    CustomRoomStatus.READY_TO_START: frozenset({CustomRoomStatus.STARTED}),
    CustomRoomStatus.STARTED: frozenset({CustomRoomStatus.RESULT_SUBMITTED}),
    CustomRoomStatus.RESULT_SUBMITTED: frozenset({CustomRoomStatus.UNDER_REVIEW}),
    CustomRoomStatus.UNDER_REVIEW: frozenset(
        {CustomRoomStatus.RESOLVED, CustomRoomStatus.REJECTED}
    ),
    CustomRoomStatus.RESOLVED: frozenset(),
    CustomRoomStatus.REJECTED: frozenset(),
    CustomRoomStatus.CANCELLED: frozenset(),
}

CREDENTIAL_STATUSES = frozenset({CustomRoomStatus.READY_TO_START, CustomRoomStatus.STARTED})


def is_terminal(status: CustomRoomStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: CustomRoomStatus, target: CustomRoomStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: CustomRoomStatus, target: CustomRoomStatus) -> CustomRoomStatus:
    if not can_transition(current, target):
        raise InvalidRoomState(f"Cannot move room from {current.value} to {target.value}")
    return target


def is_participant(room: CustomRoom, user_id: str) -> bool:
    return user_id in {room.creator_id, room.opponent_id}


def side_of(room: CustomRoom, user_id: str) -> WinnerSide | None:
    if user_id == room.creator_id:
        return WinnerSide.CREATOR
    if room.opponent_id is not None and user_id == room.opponent_id:
        return WinnerSide.OPPONENT
    return None


def user_for_side(room: CustomRoom, side: WinnerSide) -> str | None:
    return room.creator_id if side == WinnerSide.CREATOR else room.opponent_id


def maker_user_id(room: CustomRoom) -> str | None:
    """User expected to publish the in-game room ID and password."""
    if room.room_maker == RoomMaker.ME:
        return room.creator_id
    return room.opponent_id


def can_publish_credentials(room: CustomRoom, user_id: str) -> bool:
    maker = maker_user_id(room)
    return maker is not None and maker == user_id and room.status in CREDENTIAL_STATUSES
