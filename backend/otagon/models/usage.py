"""
Usage Tracking Models
=====================
Monthly query counters per user.

Quotas (per calendar month):
- free: 55 text / 25 image queries
- pro, vanguard_pro: 1583 text / 328 image queries
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from ..database import Base
from .user import TIER_FREE, TIER_PRO, TIER_VANGUARD


QUERY_TEXT = "text"
QUERY_IMAGE = "image"
QUERY_TYPES = (QUERY_TEXT, QUERY_IMAGE)


class UserUsage(Base):
    """Monthly usage window for one user"""
    __tablename__ = "user_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )

    # Monthly counters
    text_count = Column(Integer, default=0, nullable=False)
    image_count = Column(Integer, default=0, nullable=False)
    text_limit = Column(Integer, default=55, nullable=False)
    image_limit = Column(Integer, default=25, nullable=False)
    total_requests = Column(Integer, default=0, nullable=False)

    # Start of the current window
    last_reset = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="usage")

    def __repr__(self):
        return (
            f"<UserUsage(user_id={self.user_id}, text={self.text_count}/{self.text_limit}, "
            f"image={self.image_count}/{self.image_limit})>"
        )

    def count_for(self, query_type: str) -> int:
        return self.text_count if query_type == QUERY_TEXT else self.image_count

    def limit_for(self, query_type: str) -> int:
        return self.text_limit if query_type == QUERY_TEXT else self.image_limit


# Quota Constants
TIER_QUERY_LIMITS = {
    TIER_FREE: {QUERY_TEXT: 55, QUERY_IMAGE: 25},
    TIER_PRO: {QUERY_TEXT: 1583, QUERY_IMAGE: 328},
    TIER_VANGUARD: {QUERY_TEXT: 1583, QUERY_IMAGE: 328},
}

QUOTA_MESSAGE = (
    "You've used all {limit} {query_type} queries for this month. "
    "Your quota resets on the 1st. Upgrade to Pro for more."
)


def limits_for_tier(tier: str) -> dict:
    return TIER_QUERY_LIMITS.get(tier, TIER_QUERY_LIMITS[TIER_FREE])
