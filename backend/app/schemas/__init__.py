from .user import AdminUserSummary, UserSummary
from .wallet import WalletPublic, WalletTransactionPublic
from .custom_room import (
    CustomRoomCreate,
    CustomRoomPublic,
    CustomRoomReportPublic,
    RoomCredentialsRequest,
    ResolveRequest,
    RejectRequest,
    ReviewItem,
)

__all__ = [
    "AdminUserSummary",
    "UserSummary",
    "WalletPublic",
    "WalletTransactionPublic",
    "CustomRoomCreate",
    "CustomRoomPublic",
    "CustomRoomReportPublic",
    "RoomCredentialsRequest",
    "ResolveRequest",
    "RejectRequest",
    "ReviewItem",
]
