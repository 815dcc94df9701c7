"""Post and feed schemas"""
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from snapfeed.schemas.tag import TagResponse


class PostFileResponse(BaseModel):
    file_id: str
    original_filename: str
    url: str = Field(..., description="Signed download link, short-lived")


class PostResponse(BaseModel):
    id: int
    user_id: int
    content: str
    like_count: int = 0
    comment_count: int = 0
    tags: List[TagResponse] = []
    files: List[PostFileResponse] = []
    created_at: datetime
    updated_at: datetime


class FeedPage(BaseModel):
    page: int
    page_size: int
    posts: List[PostResponse]
