from pydantic import BaseModel


class UserSummary(BaseModel):
    id: str
    username: str

    class Config:
        from_attributes = True


class AdminUserSummary(UserSummary):
    """Participant as shown to administrators reviewing a room."""

    email: str
