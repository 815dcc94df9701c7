"""Registration and session schemas"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from snapfeed.schemas.user import UserResponse


class RegisterRequest(BaseModel):
    """Schema for creating a new account"""

    name: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$", description="Unique handle")
    display_name: str = Field(..., min_length=1, max_length=30)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RegisterResponse(UserResponse):
    activation_token: Optional[str] = Field(
        None, description="Single-use activation token; only returned outside production"
    )


class ActivateRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None  # cookie is preferred; body is for non-browser clients


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until the access token expires
    refresh_expires_in: int


class LoginResponse(TokenResponse):
    user: UserResponse
