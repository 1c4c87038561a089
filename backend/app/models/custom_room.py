from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..enums import CustomRoomStatus, CustomRoomType, RoomMaker, TeamSize, WinnerSide


class CustomRoom(SQLModel, table=True):
    """
    A wagered match between a creator and one opponent.

    ``winner_side`` is the submitting participant's claim; ``ruled_winner_side`` is the
    administrator's decision and the only one that moves money.
    """

    __tablename__ = "custom_rooms"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    type: CustomRoomType = Field(default=CustomRoomType.CUSTOM_ROOM)
    status: CustomRoomStatus = Field(default=CustomRoomStatus.OPEN, index=True)
    creator_id: str = Field(foreign_key="users.id", index=True)
    opponent_id: str | None = Field(default=None, foreign_key="users.id", index=True)

    team_size: TeamSize = Field(default=TeamSize.SOLO)
    rounds: int = Field(default=7)
    throwable_limit: bool = Field(default=False)
    character_skill: bool = Field(default=False)
    headshot_only: bool = Field(default=False)
    gun_attributes: bool = Field(default=False)
    coin_setting: int = Field(default=0)
    room_maker: RoomMaker = Field(default=RoomMaker.ME)

    entry_fee: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    odds: Decimal = Field(default=Decimal("1.8"), max_digits=8, decimal_places=4)
    payout: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

    creator_ready: bool = Field(default=False)
    opponent_ready: bool = Field(default=False)
    room_code: str | None = Field(default=None, max_length=60)
    room_password: str | None = Field(default=None, max_length=60)

    result_screenshot_url: str | None = Field(default=None)
    winner_side: WinnerSide | None = Field(default=None)
    result_submitted_by: str | None = Field(default=None, foreign_key="users.id")

    ruled_winner_side: WinnerSide | None = Field(default=None)
    resolved_by: str | None = Field(default=None, foreign_key="users.id")
    resolved_at: datetime | None = Field(default=None)
    rejection_reason: str | None = Field(default=None, max_length=500)
    cancelled_at: datetime | None = Field(default=None)

    version: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CustomRoomReport(SQLModel, table=True):
    __tablename__ = "custom_room_reports"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    room_id: str = Field(foreign_key="custom_rooms.id", index=True)
    reporter_id: str = Field(foreign_key="users.id", index=True)
    reported_user_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    reason: str = Field(max_length=200)
    description: str = Field(max_length=2000)
    evidence: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
