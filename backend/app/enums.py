from enum import Enum


class CustomRoomType(str, Enum):
    CUSTOM_ROOM = "CUSTOM_ROOM"
    LONE_WOLF = "LONE_WOLF"


class CustomRoomStatus(str, Enum):
    OPEN = "OPEN"
    WAITING_JOIN = "WAITING_JOIN"
    READY_TO_START = "READY_TO_START"
    STARTED = "STARTED"
    RESULT_SUBMITTED = "RESULT_SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset(
    {CustomRoomStatus.RESOLVED, CustomRoomStatus.REJECTED, CustomRoomStatus.CANCELLED}
)


class TeamSize(str, Enum):
    SOLO = "1v1"
    DUO = "2v2"
    TRIO = "3v3"
    SQUAD = "4v4"


class RoomMaker(str, Enum):
    ME = "ME"
    OPPONENT = "OPPONENT"


class WinnerSide(str, Enum):
    CREATOR = "CREATOR"
    OPPONENT = "OPPONENT"


class TransactionType(str, Enum):
    CUSTOM_MATCH_STAKE = "CUSTOM_MATCH_STAKE"
    CUSTOM_MATCH_PAYOUT = "CUSTOM_MATCH_PAYOUT"
    CUSTOM_MATCH_REFUND = "CUSTOM_MATCH_REFUND"


class TransactionStatus(str, Enum):
    COMPLETED = "COMPLETED"


class NotificationType(str, Enum):
    CUSTOM_MATCH = "CUSTOM_MATCH"
    WALLET = "WALLET"


class RejectRefundPolicy(str, Enum):
    REFUND_BOTH = "refund_both"
    FORFEIT = "forfeit"
