from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field

from ..enums import CustomRoomStatus, CustomRoomType, RoomMaker, TeamSize, WinnerSide
from .user import AdminUserSummary


class CustomRoomCreate(BaseModel):
    type: CustomRoomType = CustomRoomType.CUSTOM_ROOM
    team_size: TeamSize = TeamSize.SOLO
    rounds: int = Field(default=7, ge=1)
    throwable_limit: bool = False
    character_skill: bool = False
    headshot_only: bool = False
    gun_attributes: bool = False
    coin_setting: int = Field(default=0, ge=0)
    room_maker: RoomMaker = RoomMaker.ME
    entry_fee: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    # Falls back to the configured default odds when omitted.
    odds: Decimal | None = Field(default=None, gt=0, max_digits=8, decimal_places=4)


class CustomRoomPublic(BaseModel):
    id: str
    type: CustomRoomType
    status: CustomRoomStatus
    creator_id: str
    opponent_id: str | None
    team_size: TeamSize
    rounds: int
    throwable_limit: bool
    character_skill: bool
    headshot_only: bool
    gun_attributes: bool
    coin_setting: int
    room_maker: RoomMaker
    entry_fee: Decimal
    odds: Decimal
    payout: Decimal
    creator_ready: bool
    opponent_ready: bool
    room_code: str | None
    room_password: str | None
    result_screenshot_url: str | None
    winner_side: WinnerSide | None
    ruled_winner_side: WinnerSide | None
    rejection_reason: str | None
    resolved_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RoomCredentialsRequest(BaseModel):
    room_id: str = Field(min_length=1, max_length=60)
    room_password: str | None = Field(default=None, max_length=60)


class CustomRoomReportPublic(BaseModel):
    id: str
    room_id: str
    reporter_id: str
    reported_user_id: str | None
    reason: str
    description: str
    evidence: List[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ResolveRequest(BaseModel):
    winner_side: WinnerSide


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ReviewItem(BaseModel):
    room: CustomRoomPublic
    creator: AdminUserSummary
    opponent: AdminUserSummary | None
    reports: List[CustomRoomReportPublic]
