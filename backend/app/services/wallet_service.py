import logging
from decimal import Decimal
from typing import Sequence

from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..enums import TransactionStatus, TransactionType
from ..exceptions import InsufficientBalance, LedgerError
from ..models import User, WalletTransaction

logger = logging.getLogger(__name__)


def stake_reference(room_id: str, user_id: str) -> str:
    return f"customroom:{room_id}:stake:{user_id}"


def payout_reference(room_id: str, user_id: str) -> str:
    return f"customroom:{room_id}:payout:{user_id}"


def refund_reference(room_id: str, user_id: str) -> str:
    return f"customroom:{room_id}:refund:{user_id}"


class WalletService:
    """
    Atomic debit/credit on user balances.

    Both operations run inside the caller's session and never commit, so the balance
    change lands in the same transaction as the room write that caused it. A reference
    that is already journaled is a no-op, which keeps retried requests from moving
    money twice.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_balance(self, user_id: str) -> Decimal:
        statement = select(User.balance).where(User.id == user_id)
        balance = (await self.session.execute(statement)).scalar_one_or_none()
        if balance is None:
            raise LedgerError(f"Wallet for user {user_id} does not exist")
        return Decimal(balance)

    async def find_entry(self, reference: str) -> WalletTransaction | None:
        statement = select(WalletTransaction).where(WalletTransaction.reference == reference)
        return (await self.session.execute(statement)).scalar_one_or_none()

    async def debit(
        self,
        user_id: str,
        amount: Decimal,
        *,
        reference: str,
        type: TransactionType = TransactionType.CUSTOM_MATCH_STAKE,
        description: str | None = None,
        room_id: str | None = None,
    ) -> WalletTransaction | None:
        if amount < 0:
            raise ValueError("Debit amount cannot be negative")
        if amount == 0:
            return None

        existing = await self.find_entry(reference)
        if existing:
            return existing

        # Conditional decrement: the balance check and the write are one statement.
        result = await self.session.execute(
            sa_update(User)
            .where(User.id == user_id, User.balance >= amount)
            .values(balance=User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientBalance(user_id)

        return await self._journal(user_id, amount, reference, type, description, room_id)

    async def credit(
        self,
        user_id: str,
        amount: Decimal,
        *,
        reference: str,
        type: TransactionType,
        description: str | None = None,
        room_id: str | None = None,
    ) -> WalletTransaction | None:
        if amount < 0:
            raise ValueError("Credit amount cannot be negative")
        if amount == 0:
            return None

        existing = await self.find_entry(reference)
        if existing:
            return existing

        result = await self.session.execute(
            sa_update(User)
            .where(User.id == user_id)
            .values(balance=User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise LedgerError(f"Wallet for user {user_id} does not exist")

        return await self._journal(user_id, amount, reference, type, description, room_id)

    async def list_transactions(self, user_id: str, *, limit: int = 50) -> Sequence[WalletTransaction]:
        statement = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.created_at.desc())
            .limit(limit)
        )
        return (await self.session.execute(statement)).scalars().all()

    async def _journal(
        self,
        user_id: str,
        amount: Decimal,
        reference: str,
        type: TransactionType,
        description: str | None,
        room_id: str | None,
    ) -> WalletTransaction:
        entry = WalletTransaction(
            user_id=user_id,
            type=type,
            amount=amount,
            status=TransactionStatus.COMPLETED,
            reference=reference,
            description=description,
            room_id=room_id,
        )
        self.session.add(entry)
        await self.session.flush()
        logger.debug("Ledger %s %s for %s (%s)", type.value, amount, user_id, reference)
        return entry
