"""Tag management endpoints"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from snapfeed.api.deps import current_user, get_blob_store, require_role
from snapfeed.api.posts import serialize_post
from snapfeed.config import settings
from snapfeed.database import get_db, transaction
from snapfeed.errors import BadRequest, Conflict, NotFound
from snapfeed.models.post import Post
from snapfeed.models.tag import PostTag, Tag
from snapfeed.models.user import User
from snapfeed.schemas.post import PostResponse
from snapfeed.schemas.tag import TagCreate, TagResponse
from snapfeed.utils.blob_store import LocalBlobStore
from snapfeed.utils.logger import logger

router = APIRouter(prefix="/v1/tags", tags=["tags"])


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
def create_tag(
    payload: TagCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("moderator")),
):
    """
    Create a tag (Moderator or higher)
    """
    if db.query(Tag).filter(Tag.name == payload.name).first():
        raise Conflict(f"Tag '{payload.name}' already exists")

    with transaction(db):
        tag = Tag(name=payload.name)
        db.add(tag)

    db.refresh(tag)
    logger.info(f"Created tag: {tag.name}", extra={"user_id": user.id, "action": "create_tag"})
    return tag


@router.get("/{tag_name}/posts", response_model=List[PostResponse])
def list_posts_by_tag(
    tag_name: str,
    page: int = 1,
    db: Session = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    Posts carrying a tag, newest first (public)
    """
    if page < 1:
        raise BadRequest("page must be >= 1")
    tag = db.query(Tag).filter(Tag.name == tag_name.lower()).first()
    if tag is None:
        raise NotFound(f"Tag '{tag_name}' not found")

    page_size = settings.FEED_PAGE_SIZE
    posts = (
        db.query(Post)
        .join(PostTag, PostTag.post_id == Post.id)
        .filter(PostTag.tag_id == tag.id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return [serialize_post(p, blob_store) for p in posts]


@router.get("/{tag_id}", response_model=TagResponse)
def get_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(current_user),
):
    tag = db.query(Tag).filter(Tag.id == tag_id).first()
    if tag is None:
        raise NotFound(f"Tag {tag_id} not found")
    return tag


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("moderator")),
):
    """
    Delete a tag and detach it from every post (Moderator or higher)
    """
    tag = db.query(Tag).filter(Tag.id == tag_id).first()
    if tag is None:
        raise NotFound(f"Tag {tag_id} not found")

    with transaction(db):
        db.delete(tag)

    logger.info(f"Deleted tag: {tag_id}", extra={"user_id": user.id, "action": "delete_tag"})
    return None
