"""User profile, role management and follow endpoints"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from snapfeed.api.deps import current_user, require_role
from snapfeed.database import get_db, transaction
from snapfeed.errors import BadRequest, Conflict, NotFound
from snapfeed.models.follower import Follower
from snapfeed.models.role import Role
from snapfeed.models.user import User
from snapfeed.schemas.user import QuotaResponse, RoleUpdate, UserProfile, UserResponse
from snapfeed.utils.logger import logger
from snapfeed.utils.quota import QuotaKind, consume, remaining

router = APIRouter(prefix="/v1/users", tags=["users"])


def _load_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _profile(db: Session, user: User, include_quota: bool) -> UserProfile:
    profile = UserProfile.model_validate(user)
    profile.followers_count = db.query(Follower).filter(Follower.user_id == user.id).count()
    profile.following_count = db.query(Follower).filter(Follower.follower_id == user.id).count()
    if include_quota and user.limit is not None:
        profile.quota = QuotaResponse(
            **remaining(db, user.id),
            replenished_on=user.limit.replenished_on,
        )
    return profile


@router.get("/me", response_model=UserProfile)
def get_me(
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    """Own profile, including the remaining daily quota"""
    return _profile(db, user, include_quota=True)


@router.get("/{user_id}", response_model=UserProfile)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    viewer: User = Depends(current_user),
):
    user = _load_user(db, user_id)
    return _profile(db, user, include_quota=user.id == viewer.id)


@router.patch("/{user_id}/role", response_model=UserResponse)
def update_role(
    user_id: int,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_role("admin")),
):
    """
    Assign a role to a user (Admin only)
    """
    user = _load_user(db, user_id)
    role = db.query(Role).filter(Role.name == payload.role_name).first()
    if role is None:
        raise NotFound(f"Role '{payload.role_name}' not found")

    with transaction(db):
        user.role_id = role.id

    db.refresh(user)
    logger.info(
        f"Role of user {user_id} set to {role.name}",
        extra={"user_id": admin.id, "action": "update_role"},
    )
    return user


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------

@router.post("/{user_id}/follow", status_code=status.HTTP_201_CREATED)
def follow_user(
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    """
    Follow another user (consumes one unit of the follow quota)
    """
    if user_id == user.id:
        raise BadRequest("You cannot follow yourself")
    _load_user(db, user_id)

    existing = db.query(Follower).filter(
        Follower.user_id == user_id,
        Follower.follower_id == user.id,
    ).first()
    if existing:
        raise Conflict("Already following this user")

    with transaction(db):
        consume(db, user.id, QuotaKind.FOLLOW)
        db.add(Follower(user_id=user_id, follower_id=user.id))

    logger.info(f"User {user.id} followed {user_id}", extra={"user_id": user.id, "action": "follow"})
    return {"user_id": user_id, "following": True}


@router.delete("/{user_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
def unfollow_user(
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    follow = db.query(Follower).filter(
        Follower.user_id == user_id,
        Follower.follower_id == user.id,
    ).first()
    if follow is None:
        raise NotFound("You are not following this user")

    with transaction(db):
        db.delete(follow)
    return None
