"""Follower model"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer

from snapfeed.database import Base


class Follower(Base):
    """``follower_id`` follows ``user_id`` (unique per pair)"""

    __tablename__ = "followers"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    follower_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
