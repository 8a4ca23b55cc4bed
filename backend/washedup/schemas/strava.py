"""Pydantic models for Strava OAuth token endpoint payloads."""

from pydantic import BaseModel, ConfigDict


class StravaAthlete(BaseModel):
    """Summary athlete returned alongside tokens on authorization_code exchange."""

    model_config = ConfigDict(extra="ignore")

    id: int
    username: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    city: str | None = None
    country: str | None = None
    sex: str | None = None
    profile: str | None = None
    profile_medium: str | None = None


class StravaTokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str
    expires_at: int  # Unix timestamp
    expires_in: int | None = None
    token_type: str | None = None
    athlete: StravaAthlete | None = None  # absent on refresh_token grants
