from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from ..enums import TransactionStatus, TransactionType


class WalletPublic(BaseModel):
    user_id: str
    balance: Decimal


class WalletTransactionPublic(BaseModel):
    id: str
    type: TransactionType
    amount: Decimal
    status: TransactionStatus
    reference: str
    description: str | None
    room_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True
