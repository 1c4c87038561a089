from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlmodel import Field, SQLModel

from ..enums import TransactionStatus, TransactionType


class WalletTransaction(SQLModel, table=True):
    """Journal row for every balance change; ``reference`` makes ledger calls idempotent."""

    __tablename__ = "wallet_transactions"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    type: TransactionType
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)
    reference: str = Field(index=True, unique=True)
    description: str | None = Field(default=None)
    room_id: str | None = Field(default=None, foreign_key="custom_rooms.id", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
