"""Tag schemas"""
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

_TAG_PATTERN = r"^[A-Za-z0-9_-]+$"


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, pattern=_TAG_PATTERN)

    @field_validator("name")
    @classmethod
    def lowercase(cls, value: str) -> str:
        return value.lower()


class PostTagAttach(TagCreate):
    """Attach an existing tag to a post by name"""


class TagResponse(BaseModel):
    id: int
    name: str
    created_at: datetime

    class Config:
        from_attributes = True
