"""Post, like, comment and post-tag endpoints"""
import os
import uuid
from typing import Iterable, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from snapfeed.api.deps import (
    comment_owner_or,
    current_user,
    get_blob_store,
    load_post,
    post_owner_or,
)
from snapfeed.config import settings
from snapfeed.database import get_db, transaction
from snapfeed.errors import BadRequest, Conflict, InternalError, NotFound
from snapfeed.models.comment import Comment
from snapfeed.models.post import Post, PostFile, PostLike
from snapfeed.models.tag import PostTag, Tag
from snapfeed.models.user import User
from snapfeed.schemas.comment import CommentCreate, CommentResponse, CommentUpdate
from snapfeed.schemas.post import PostFileResponse, PostResponse
from snapfeed.schemas.tag import PostTagAttach, TagResponse
from snapfeed.utils.blob_store import LocalBlobStore
from snapfeed.utils.logger import logger
from snapfeed.utils.quota import QuotaKind, consume

router = APIRouter(prefix="/v1/posts", tags=["posts"])

MAX_CONTENT_LENGTH = 2048

# Leading bytes of the image formats we accept
_IMAGE_SIGNATURES = (
    b"\xff\xd8\xff",  # jpeg
    b"\x89PNG\r\n\x1a\n",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def serialize_post(post: Post, blob_store: LocalBlobStore) -> PostResponse:
    """Post with counts, tags and freshly signed file links"""
    return PostResponse(
        id=post.id,
        user_id=post.user_id,
        content=post.content,
        like_count=len(post.likes),
        comment_count=len(post.comments),
        tags=[TagResponse.model_validate(pt.tag) for pt in post.post_tags],
        files=[
            PostFileResponse(
                file_id=f.file_id,
                original_filename=f.original_filename,
                url=blob_store.get_url(f.blob_key),
            )
            for f in post.files
        ],
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


def _looks_like_image(data: bytes) -> bool:
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return True
    return any(data.startswith(sig) for sig in _IMAGE_SIGNATURES)


def _read_uploads(uploads: List[UploadFile]) -> List[Tuple[str, str, bytes]]:
    """Validate uploads and return (extension, original filename, bytes) for each"""
    if len(uploads) > settings.MAX_FILES_PER_POST:
        raise BadRequest(f"You can only upload {settings.MAX_FILES_PER_POST} files per post")

    staged = []
    for upload in uploads:
        filename = os.path.basename(upload.filename or "")
        ext = os.path.splitext(filename)[1].lower()
        if ext not in settings.ALLOWED_UPLOAD_EXTENSIONS:
            raise BadRequest(f"File must be one of: {', '.join(settings.ALLOWED_UPLOAD_EXTENSIONS)}")

        data = upload.file.read(settings.MAX_UPLOAD_BYTES + 1)
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise BadRequest(f"File size exceeds {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit")
        if not _looks_like_image(data):
            raise BadRequest("File content is not a supported image")

        staged.append((ext, filename, data))
    return staged


def _store_files(
    db: Session,
    blob_store: LocalBlobStore,
    post_id: int,
    staged: Iterable[Tuple[str, str, bytes]],
    written: List[str],
) -> None:
    """Write blobs and add PostFile rows; ``written`` collects keys for cleanup"""
    for ext, filename, data in staged:
        record = PostFile(
            file_id=str(uuid.uuid4()),
            post_id=post_id,
            file_extension=ext,
            original_filename=filename,
        )
        blob_store.put(data, record.blob_key)
        written.append(record.blob_key)
        db.add(record)


def _discard_blobs(blob_store: LocalBlobStore, keys: Iterable[str]) -> None:
    for key in keys:
        try:
            blob_store.delete(key)
        except InternalError:
            logger.error("Failed to delete blob", extra={"path": key, "action": "discard_blob"}, exc_info=True)


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    content: str = Form(..., min_length=1, max_length=MAX_CONTENT_LENGTH),
    file: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    Create a post with up to four image attachments

    Consumes one unit of the create_post quota. If anything fails the post,
    its file rows and the quota decrement are rolled back and any blobs
    already written are removed.
    """
    staged = _read_uploads(file or [])
    written: List[str] = []

    try:
        with transaction(db):
            consume(db, user.id, QuotaKind.CREATE_POST)
            post = Post(user_id=user.id, content=content)
            db.add(post)
            db.flush()  # need post.id for the file rows
            _store_files(db, blob_store, post.id, staged, written)
    except Exception:
        _discard_blobs(blob_store, written)
        raise

    db.refresh(post)
    logger.info(f"Created post: {post.id}", extra={"user_id": user.id, "action": "create_post"})
    return serialize_post(post, blob_store)


@router.get("/users/{user_id}", response_model=List[PostResponse])
def list_user_posts(
    user_id: int,
    page: int = 1,
    db: Session = Depends(get_db),
    _: User = Depends(current_user),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    List a user's posts, newest first
    """
    if page < 1:
        raise BadRequest("page must be >= 1")
    if db.query(User.id).filter(User.id == user_id).first() is None:
        raise NotFound(f"User {user_id} not found")

    page_size = settings.FEED_PAGE_SIZE
    posts = (
        db.query(Post)
        .filter(Post.user_id == user_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return [serialize_post(p, blob_store) for p in posts]


@router.get("/{post_id}", response_model=PostResponse)
def get_post(
    post_id: int,
    db: Session = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    return serialize_post(load_post(db, post_id), blob_store)


@router.patch("/{post_id}", response_model=PostResponse)
def update_post(
    content: str = Form(..., min_length=1, max_length=MAX_CONTENT_LENGTH),
    file: Optional[List[UploadFile]] = File(None),
    post: Post = Depends(post_owner_or("moderator")),
    db: Session = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    Update a post's content (owner or moderator)

    When files are sent they replace the current attachments; old blobs are
    removed only after the new ones are committed.
    """
    staged = _read_uploads(file or [])
    written: List[str] = []
    replaced: List[str] = []

    try:
        with transaction(db):
            post.content = content
            if staged:
                for old in list(post.files):
                    replaced.append(old.blob_key)
                    db.delete(old)
                _store_files(db, blob_store, post.id, staged, written)
    except Exception:
        _discard_blobs(blob_store, written)
        raise

    _discard_blobs(blob_store, replaced)
    db.refresh(post)
    return serialize_post(post, blob_store)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post: Post = Depends(post_owner_or("admin")),
    db: Session = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    Delete a post with its files, likes, comments and tags (owner or admin)
    """
    post_id = post.id
    keys = [f.blob_key for f in post.files]

    with transaction(db):
        db.delete(post)

    _discard_blobs(blob_store, keys)
    logger.info(f"Deleted post: {post_id}", extra={"action": "delete_post"})
    return None


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

@router.post("/{post_id}/likes", status_code=status.HTTP_201_CREATED)
def add_like(
    post_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    """
    Like a post (consumes one unit of the like quota)
    """
    load_post(db, post_id)
    existing = db.query(PostLike).filter(PostLike.post_id == post_id, PostLike.user_id == user.id).first()
    if existing:
        raise Conflict("You already liked this post")

    with transaction(db):
        consume(db, user.id, QuotaKind.LIKE)
        db.add(PostLike(post_id=post_id, user_id=user.id))

    return {"post_id": post_id, "liked": True}


@router.delete("/{post_id}/likes", status_code=status.HTTP_204_NO_CONTENT)
def remove_like(
    post_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    like = db.query(PostLike).filter(PostLike.post_id == post_id, PostLike.user_id == user.id).first()
    if like is None:
        raise NotFound("Like not found")

    with transaction(db):
        db.delete(like)
    return None


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

@router.get("/{post_id}/comments", response_model=List[CommentResponse])
def list_comments(
    post_id: int,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    _: User = Depends(current_user),
):
    load_post(db, post_id)
    return (
        db.query(Comment)
        .filter(Comment.post_id == post_id)
        .order_by(Comment.created_at, Comment.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def create_comment(
    post_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    """
    Comment on a post (consumes one unit of the comment quota)
    """
    load_post(db, post_id)

    with transaction(db):
        consume(db, user.id, QuotaKind.COMMENT)
        comment = Comment(post_id=post_id, user_id=user.id, content=payload.content)
        db.add(comment)

    db.refresh(comment)
    return comment


@router.get("/{post_id}/comments/{comment_id}", response_model=CommentResponse)
def get_comment(
    post_id: int,
    comment_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(current_user),
):
    comment = db.query(Comment).filter(Comment.id == comment_id, Comment.post_id == post_id).first()
    if comment is None:
        raise NotFound(f"Comment {comment_id} not found")
    return comment


@router.patch("/{post_id}/comments/{comment_id}", response_model=CommentResponse)
def update_comment(
    payload: CommentUpdate,
    comment: Comment = Depends(comment_owner_or("moderator")),
    db: Session = Depends(get_db),
):
    with transaction(db):
        comment.content = payload.content

    db.refresh(comment)
    return comment


@router.delete("/{post_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment: Comment = Depends(comment_owner_or("admin")),
    db: Session = Depends(get_db),
):
    with transaction(db):
        db.delete(comment)
    return None


# ---------------------------------------------------------------------------
# Post tags
# ---------------------------------------------------------------------------

@router.get("/{post_id}/tags", response_model=List[TagResponse])
def list_post_tags(
    post_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(current_user),
):
    post = load_post(db, post_id)
    return [pt.tag for pt in post.post_tags]


@router.post("/{post_id}/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
def attach_tag(
    payload: PostTagAttach,
    post: Post = Depends(post_owner_or("moderator")),
    db: Session = Depends(get_db),
):
    """
    Attach an existing tag to a post by name (owner or moderator)
    """
    tag = db.query(Tag).filter(Tag.name == payload.name).first()
    if tag is None:
        raise NotFound(f"Tag '{payload.name}' not found")

    existing = db.query(PostTag).filter(PostTag.post_id == post.id, PostTag.tag_id == tag.id).first()
    if existing:
        raise Conflict("Tag already attached to this post")

    with transaction(db):
        db.add(PostTag(post_id=post.id, tag_id=tag.id))

    return tag


@router.delete("/{post_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def detach_tag(
    tag_id: int,
    post: Post = Depends(post_owner_or("moderator")),
    db: Session = Depends(get_db),
):
    post_tag = db.query(PostTag).filter(PostTag.post_id == post.id, PostTag.tag_id == tag_id).first()
    if post_tag is None:
        raise NotFound("Tag is not attached to this post")

    with transaction(db):
        db.delete(post_tag)
    return None
