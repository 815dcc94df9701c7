"""Role-precedence and ownership checks"""
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snapfeed.errors import Forbidden, InternalError
from snapfeed.models.role import Role
from snapfeed.models.user import User
from snapfeed.utils.logger import logger


def load_role(db: Session, role_name: str) -> Role:
    """Fetch a role definition; a missing or unreadable role is an internal error"""
    try:
        role = db.query(Role).filter(Role.name == role_name).first()
    except SQLAlchemyError as exc:
        raise InternalError(f"failed to load role {role_name!r}: {exc}") from exc
    if role is None:
        raise InternalError(f"role {role_name!r} is not defined")
    return role


def check_role_precedence(db: Session, user: User, role_name: str) -> bool:
    """True when the user's role level is at least that of ``role_name``"""
    required = load_role(db, role_name)
    allowed = user.role.level >= required.level

    logger.debug(
        "Role precedence check",
        extra={
            "user_id": user.id,
            "action": "check_role",
            "reason": f"{user.role.name}({user.role.level}) vs {required.name}({required.level})",
        },
    )
    return allowed


def ensure_role(db: Session, user: User, role_name: str) -> None:
    if not check_role_precedence(db, user, role_name):
        raise Forbidden(f"Role '{role_name}' or higher required")


def ensure_owner_or_role(db: Session, user: User, owner_id: int, role_name: str) -> None:
    """Owners always pass; anyone else needs ``role_name`` or higher"""
    if user.id == owner_id:
        return
    ensure_role(db, user, role_name)
