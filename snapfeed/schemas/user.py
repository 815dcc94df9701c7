"""User, role and quota schemas"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class RoleResponse(BaseModel):
    name: str
    level: int

    class Config:
        from_attributes = True


class QuotaResponse(BaseModel):
    """Remaining daily allowance per action"""

    create_post: int
    comment: int
    like: int
    follow: int
    replenished_on: Optional[date] = None


class UserResponse(BaseModel):
    """Public view of an account"""

    id: int
    name: str
    display_name: str
    role: RoleResponse
    activated_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserProfile(UserResponse):
    followers_count: int = 0
    following_count: int = 0
    quota: Optional[QuotaResponse] = Field(None, description="Only present on your own profile")


class RoleUpdate(BaseModel):
    role_name: str = Field(..., min_length=1, max_length=50)
