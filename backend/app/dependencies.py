from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from .config import get_settings
from .database import build_session_factory, get_session
from .exceptions import RateLimitExceeded, to_http_exception
from .models import User
from .security import decode_token
from .services.notification_service import NotificationService
from .services.rate_limit import mutation_limiter
from .services.storage import EvidenceStorage, get_evidence_storage

# Tokens are issued by the platform's auth service; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")

    statement = select(User).where(User.id == sub)
    result = await session.execute(statement)
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    # Detached so a rolled-back room write in this session cannot expire it.
    session.expunge(user)
    return user


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


async def enforce_mutation_rate_limit(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> None:
    settings = get_settings()
    result = await mutation_limiter.hit(
        f"{current_user.id}:{request.url.path}",
        limit=settings.mutation_rate_limit_requests,
        window_seconds=settings.mutation_rate_limit_window_seconds,
    )
    if not result.allowed:
        raise to_http_exception(RateLimitExceeded(result.retry_after))


def get_notifier(session: AsyncSession = Depends(get_session)) -> NotificationService:
    return NotificationService(build_session_factory(session.bind))


def get_storage() -> EvidenceStorage:
    return get_evidence_storage()
