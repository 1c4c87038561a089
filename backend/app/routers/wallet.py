from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_session
from ..dependencies import get_current_user
from ..models import User
from ..schemas.wallet import WalletPublic, WalletTransactionPublic
from ..services.wallet_service import WalletService

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/me", response_model=WalletPublic)
async def get_my_wallet(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> WalletPublic:
    balance = await WalletService(session).get_balance(current_user.id)
    return WalletPublic(user_id=current_user.id, balance=balance)


@router.get("/me/transactions", response_model=list[WalletTransactionPublic])
async def list_my_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[WalletTransactionPublic]:
    entries = await WalletService(session).list_transactions(current_user.id, limit=limit)
    return [WalletTransactionPublic.model_validate(entry) for entry in entries]
