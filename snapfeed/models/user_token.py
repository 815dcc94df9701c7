"""UserToken model - single-use, scoped account tokens"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from snapfeed.database import Base


class UserToken(Base):
    """A hashed one-time token bound to a user and a scope.

    Only the SHA256 of the plaintext is stored; the plaintext is handed to the
    user once at issue time.
    """

    __tablename__ = "user_tokens"

    token_hash = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    scope = Column(String(32), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
