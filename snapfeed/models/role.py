"""Role model - numeric privilege levels"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from snapfeed.database import Base


class Role(Base):
    """A named privilege level.

    Authorization compares ``level`` values, never names, so a new role can be
    slotted between existing ones without touching any gate.
    """

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    level = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
