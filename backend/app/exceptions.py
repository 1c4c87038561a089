"""
Domain errors raised by the custom room services.

Routers translate them into HTTP responses through ``to_http_exception``; services
never raise ``HTTPException`` themselves.
"""

from fastapi import HTTPException, status


class CustomRoomError(Exception):
    """Base class for every custom room precondition failure."""

    error_code = "CUSTOM_ROOM_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ============ Wallet ============

class InsufficientBalance(CustomRoomError):
    error_code = "INSUFFICIENT_BALANCE"
    default_message = "Insufficient balance"

    def __init__(self, user_id: str | None = None, message: str | None = None) -> None:
        self.user_id = user_id
        super().__init__(message)


# ============ Room lookup / configuration ============

class RoomNotFound(CustomRoomError):
    error_code = "ROOM_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Room not found"

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__()


class InvalidRoomConfiguration(CustomRoomError):
    error_code = "INVALID_ROOM_CONFIGURATION"
    default_message = "Invalid room configuration"


class EvidenceRequired(CustomRoomError):
    error_code = "EVIDENCE_REQUIRED"
    default_message = "Screenshot is required"


class InvalidEvidence(CustomRoomError):
    error_code = "INVALID_EVIDENCE"
    default_message = "Evidence file was rejected"


# ============ Membership ============

class NotAParticipant(CustomRoomError):
    error_code = "NOT_A_PARTICIPANT"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not a participant of this room"


class NotRoomMaker(CustomRoomError):
    error_code = "NOT_ROOM_MAKER"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Only the room maker can set room details"


class NotRoomCreator(CustomRoomError):
    error_code = "NOT_ROOM_CREATOR"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Only the room creator can do this"


class SelfJoinForbidden(CustomRoomError):
    error_code = "SELF_JOIN_FORBIDDEN"
    default_message = "You cannot join your own room"


# ============ State ============

class RoomNotJoinable(CustomRoomError):
    error_code = "ROOM_NOT_JOINABLE"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Room is not open for joining"


class RoomNotUnderReview(CustomRoomError):
    error_code = "ROOM_NOT_UNDER_REVIEW"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Room not under review"


class RoomAlreadyResolved(CustomRoomError):
    error_code = "ROOM_ALREADY_RESOLVED"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Room already resolved"


class InvalidRoomState(CustomRoomError):
    error_code = "INVALID_ROOM_STATE"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Action not allowed in the current room state"


# ============ Infrastructure ============

class RateLimitExceeded(CustomRoomError):
    error_code = "RATE_LIMITED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__()


class RoomBusy(CustomRoomError):
    """Write attempts on a room were exhausted by conflicts or transient database errors."""

    error_code = "ROOM_BUSY"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Room is busy, please retry"


class LedgerError(Exception):
    """The ledger could not apply a balance change (unknown account)."""


class RoomVersionConflict(Exception):
    """Internal signal: the room row changed between read and write."""

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Room {room_id} was modified concurrently")


def to_http_exception(exc: CustomRoomError) -> HTTPException:
    headers = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after)}
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.error_code, "message": exc.message},
        headers=headers,
    )
