from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_session
from ..dependencies import get_admin_user, get_notifier
from ..exceptions import CustomRoomError, to_http_exception
from ..models import User
from ..schemas.custom_room import (
    CustomRoomPublic,
    CustomRoomReportPublic,
    RejectRequest,
    ResolveRequest,
    ReviewItem,
)
from ..schemas.user import AdminUserSummary
from ..services.arbitration_service import ArbitrationService
from ..services.notification_service import NotificationService

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(get_admin_user)],
)


def get_arbitration_service(
    session: AsyncSession = Depends(get_session),
    notifier: NotificationService = Depends(get_notifier),
) -> ArbitrationService:
    return ArbitrationService(session, notifier=notifier)


@router.get("/custom-rooms/review", response_model=list[ReviewItem])
async def list_rooms_under_review(
    service: ArbitrationService = Depends(get_arbitration_service),
) -> list[ReviewItem]:
    entries = await service.list_for_review()
    return [
        ReviewItem(
            room=CustomRoomPublic.model_validate(entry.room),
            creator=AdminUserSummary.model_validate(entry.creator),
            opponent=AdminUserSummary.model_validate(entry.opponent) if entry.opponent else None,
            reports=[CustomRoomReportPublic.model_validate(report) for report in entry.reports],
        )
        for entry in entries
    ]


@router.post("/custom-rooms/{room_id}/resolve", response_model=CustomRoomPublic)
async def resolve_room(
    room_id: str,
    payload: ResolveRequest,
    admin: User = Depends(get_admin_user),
    service: ArbitrationService = Depends(get_arbitration_service),
) -> CustomRoomPublic:
    try:
        room = await service.resolve(room_id=room_id, admin=admin, winner_side=payload.winner_side)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return CustomRoomPublic.model_validate(room)


@router.post("/custom-rooms/{room_id}/reject", response_model=CustomRoomPublic)
async def reject_room(
    room_id: str,
    payload: RejectRequest | None = None,
    admin: User = Depends(get_admin_user),
    service: ArbitrationService = Depends(get_arbitration_service),
) -> CustomRoomPublic:
    reason = payload.reason if payload else None
    try:
        room = await service.reject(room_id=room_id, admin=admin, reason=reason)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return CustomRoomPublic.model_validate(room)
