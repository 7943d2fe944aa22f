"""Authentication schemas."""
from datetime import datetime, timezone

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """User registration request."""

    full_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=1)
    confirm_password: str


class LoginRequest(BaseModel):
    """User login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Token refresh request: the (possibly expired) access token plus its refresh token."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)


class UserSummary(BaseModel):
    """Public identity summary returned with a token pair."""

    id: str
    username: str
    full_name: str
    profile_picture_url: str | None = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Token pair response."""

    access_token: str
    refresh_token: str
    access_token_expiry: datetime
    token_type: str = "bearer"
    user: UserSummary

    @field_validator("access_token_expiry")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        """Naive expiries are UTC; emit them with an explicit offset."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
