from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_session
from ..dependencies import enforce_mutation_rate_limit, get_current_user, get_notifier, get_storage
from ..enums import WinnerSide
from ..exceptions import CustomRoomError, to_http_exception
from ..game.state_machine import is_participant
from ..models import CustomRoom, User
from ..schemas.custom_room import (
    CustomRoomCreate,
    CustomRoomPublic,
    CustomRoomReportPublic,
    RoomCredentialsRequest,
)
from ..services.custom_room_service import CustomRoomService
from ..services.notification_service import NotificationService
from ..services.storage import EvidenceStorage, read_upload

router = APIRouter(prefix="/custom-rooms", tags=["custom-rooms"])


def _room_to_public(room: CustomRoom, viewer: User) -> CustomRoomPublic:
    public = CustomRoomPublic.model_validate(room)
    if not viewer.is_admin and not is_participant(room, viewer.id):
        public.room_password = None
    return public


def get_room_service(
    session: AsyncSession = Depends(get_session),
    notifier: NotificationService = Depends(get_notifier),
    storage: EvidenceStorage = Depends(get_storage),
) -> CustomRoomService:
    return CustomRoomService(session, storage=storage, notifier=notifier)


@router.post(
    "",
    response_model=CustomRoomPublic,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_mutation_rate_limit)],
)
async def create_room(
    payload: CustomRoomCreate,
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        room = await service.create_room(creator=current_user, payload=payload)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.get("/my", response_model=list[CustomRoomPublic])
async def list_my_rooms(
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    rooms = await service.list_my_rooms(current_user)
    return [_room_to_public(room, current_user) for room in rooms]


@router.get("/open", response_model=list[CustomRoomPublic])
async def list_open_rooms(
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    rooms = await service.list_open_rooms(current_user)
    return [_room_to_public(room, current_user) for room in rooms]


@router.get("/{room_id}", response_model=CustomRoomPublic)
async def get_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        room = await service.get_room_for_viewer(room_id, current_user)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.post(
    "/{room_id}/join",
    response_model=CustomRoomPublic,
    dependencies=[Depends(enforce_mutation_rate_limit)],
)
async def join_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        room = await service.join_room(room_id=room_id, user=current_user)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.post(
    "/{room_id}/ready",
    response_model=CustomRoomPublic,
    dependencies=[Depends(enforce_mutation_rate_limit)],
)
async def mark_ready(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        room = await service.mark_ready(room_id=room_id, user=current_user)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.post(
    "/{room_id}/room",
    response_model=CustomRoomPublic,
    dependencies=[Depends(enforce_mutation_rate_limit)],
)
async def set_room_credentials(
    room_id: str,
    payload: RoomCredentialsRequest,
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        room = await service.set_credentials(
            room_id=room_id,
            user=current_user,
            room_code=payload.room_id,
            room_password=payload.room_password,
        )
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.post(
    "/{room_id}/result",
    response_model=CustomRoomPublic,
    dependencies=[Depends(enforce_mutation_rate_limit)],
)
async def submit_result(
    room_id: str,
    winner_side: WinnerSide = Form(...),
    screenshot: UploadFile | None = File(default=None),
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        evidence = await read_upload(screenshot)
        room = await service.submit_result(
            room_id=room_id,
            user=current_user,
            winner_side=winner_side,
            evidence=evidence,
        )
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.post("/{room_id}/cancel", response_model=CustomRoomPublic)
async def cancel_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        room = await service.cancel_room(room_id=room_id, user=current_user)
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return _room_to_public(room, current_user)


@router.post(
    "/{room_id}/report",
    response_model=CustomRoomReportPublic,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_mutation_rate_limit)],
)
async def report_room(
    room_id: str,
    reason: str = Form(..., max_length=200),
    description: str = Form(..., max_length=2000),
    evidence: list[UploadFile] | None = File(default=None),
    current_user: User = Depends(get_current_user),
    service: CustomRoomService = Depends(get_room_service),
):
    try:
        files = [item for item in [await read_upload(upload) for upload in evidence or []] if item]
        report = await service.report_room(
            room_id=room_id,
            user=current_user,
            reason=reason,
            description=description,
            evidence=files,
        )
    except CustomRoomError as exc:
        raise to_http_exception(exc) from exc
    return CustomRoomReportPublic.model_validate(report)
