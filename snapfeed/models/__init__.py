"""Database models"""
from snapfeed.models.comment import Comment
from snapfeed.models.follower import Follower
from snapfeed.models.post import Post, PostFile, PostLike
from snapfeed.models.role import Role
from snapfeed.models.tag import PostTag, Tag
from snapfeed.models.user import User, UserLimit
from snapfeed.models.user_token import UserToken

__all__ = [
    "Comment",
    "Follower",
    "Post",
    "PostFile",
    "PostLike",
    "PostTag",
    "Role",
    "Tag",
    "User",
    "UserLimit",
    "UserToken",
]
