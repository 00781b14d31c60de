from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from portal.db.base import Base

class UsedMagicLink(Base):
    """A magic-link token already exchanged for a session."""
    __tablename__ = "used_magic_links"

    jti = Column(String, primary_key=True)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), server_default=func.now())
