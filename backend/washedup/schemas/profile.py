from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    firstname: str
    lastname: str
    username: str
    strava_athlete_id: int | None
    role: str
    updated_at: datetime | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str


class SessionOut(BaseModel):
    """Session as exposed to the client: expiry only, never the tokens."""

    user_id: int
    expires_at: datetime
    expires_in: int


class LayoutData(BaseModel):
    session: SessionOut | None
    user: UserOut | None
    profile: ProfileOut | None
