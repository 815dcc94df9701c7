"""User and UserLimit models"""
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from snapfeed.database import Base


class User(Base):
    """User model - a registered account"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(30), unique=True, nullable=False, index=True)
    display_name = Column(String(30), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False, index=True)
    activated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    role = relationship("Role", lazy="joined")
    limit = relationship("UserLimit", back_populates="user", uselist=False, cascade="all, delete-orphan")
    posts = relationship("Post", back_populates="author", cascade="all, delete-orphan")


class UserLimit(Base):
    """Per-user daily allowance counters (the quota ledger row)"""

    __tablename__ = "user_limits"
    __table_args__ = (
        CheckConstraint("create_post_limit >= 0", name="ck_user_limits_create_post_non_negative"),
        CheckConstraint("comment_limit >= 0", name="ck_user_limits_comment_non_negative"),
        CheckConstraint("like_limit >= 0", name="ck_user_limits_like_non_negative"),
        CheckConstraint("follow_limit >= 0", name="ck_user_limits_follow_non_negative"),
    )

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    create_post_limit = Column(Integer, nullable=False, default=0)
    comment_limit = Column(Integer, nullable=False, default=0)
    like_limit = Column(Integer, nullable=False, default=0)
    follow_limit = Column(Integer, nullable=False, default=0)
    replenished_on = Column(Date, nullable=True)  # local date of the last daily grant
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="limit")
