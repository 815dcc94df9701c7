"""Pydantic schemas for request/response validation"""
from snapfeed.schemas.auth import (
    ActivateRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from snapfeed.schemas.comment import CommentCreate, CommentResponse, CommentUpdate
from snapfeed.schemas.post import FeedPage, PostFileResponse, PostResponse
from snapfeed.schemas.tag import PostTagAttach, TagCreate, TagResponse
from snapfeed.schemas.user import QuotaResponse, RoleResponse, RoleUpdate, UserProfile, UserResponse

__all__ = [
    "RegisterRequest",
    "RegisterResponse",
    "ActivateRequest",
    "LoginRequest",
    "LoginResponse",
    "RefreshRequest",
    "LogoutRequest",
    "TokenResponse",
    "UserResponse",
    "UserProfile",
    "RoleResponse",
    "RoleUpdate",
    "QuotaResponse",
    "PostResponse",
    "PostFileResponse",
    "FeedPage",
    "CommentCreate",
    "CommentUpdate",
    "CommentResponse",
    "TagCreate",
    "TagResponse",
    "PostTagAttach",
]
