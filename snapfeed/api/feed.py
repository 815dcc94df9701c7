"""Home feed endpoint"""
from fastapi import APIRouter, Depends
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from snapfeed.api.deps import AuthContext, get_blob_store, optional_user
from snapfeed.api.posts import serialize_post
from snapfeed.config import settings
from snapfeed.database import get_db
from snapfeed.errors import BadRequest
from snapfeed.models.follower import Follower
from snapfeed.models.post import Post, PostLike
from snapfeed.schemas.post import FeedPage
from snapfeed.utils.blob_store import LocalBlobStore

router = APIRouter(prefix="/v1/feed", tags=["feed"])


@router.get("", response_model=FeedPage)
def get_feed(
    page: int = 1,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(optional_user),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    Home feed

    - Signed in: your posts and posts by users you follow, newest first
    - Anonymous: every post, most liked first, then newest
    """
    if page < 1:
        raise BadRequest("page must be >= 1")

    page_size = settings.FEED_PAGE_SIZE
    offset = (page - 1) * page_size

    if ctx.user is not None:
        followed = db.query(Follower.user_id).filter(Follower.follower_id == ctx.user.id)
        query = (
            db.query(Post)
            .filter(or_(Post.user_id == ctx.user.id, Post.user_id.in_(followed.scalar_subquery())))
            .order_by(Post.created_at.desc(), Post.id.desc())
        )
    else:
        like_counts = (
            db.query(PostLike.post_id, func.count(PostLike.user_id).label("like_count"))
            .group_by(PostLike.post_id)
            .subquery()
        )
        query = (
            db.query(Post)
            .outerjoin(like_counts, like_counts.c.post_id == Post.id)
            .order_by(
                func.coalesce(like_counts.c.like_count, 0).desc(),
                Post.created_at.desc(),
                Post.id.desc(),
            )
        )

    posts = query.offset(offset).limit(page_size).all()
    return FeedPage(
        page=page,
        page_size=page_size,
        posts=[serialize_post(p, blob_store) for p in posts],
    )
