from .user import User
from .custom_room import CustomRoom, CustomRoomReport
from .wallet import WalletTransaction
from .notification import Notification

__all__ = [
    "User",
    "CustomRoom",
    "CustomRoomReport",
    "WalletTransaction",
    "Notification",
]
