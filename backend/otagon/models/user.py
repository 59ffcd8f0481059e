"""
User Model
==========
Account profile, subscription tier and trial state.

Identity comes from Supabase auth: ``auth_id`` holds the external auth user id
(JWT ``sub``) and ``id`` is the internal key used by every other table.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from ..database import Base


TIER_FREE = "free"
TIER_PRO = "pro"
TIER_VANGUARD = "vanguard_pro"
TIERS = (TIER_FREE, TIER_PRO, TIER_VANGUARD)


class User(Base):
    """User profile - core account information"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_id = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=True)
    display_name = Column(String(100), nullable=True)

    # Subscription
    tier = Column(String(20), default=TIER_FREE, nullable=False)
    is_active = Column(Boolean, default=True)

    # Trial
    is_on_trial = Column(Boolean, default=False)
    has_used_trial = Column(Boolean, default=False)
    trial_started_at = Column(DateTime(timezone=True), nullable=True)
    trial_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_login = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    usage = relationship(
        "UserUsage",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    conversations = relationship(
        "Conversation",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="raise"
    )

    def __repr__(self):
        return f"<User(id={self.id}, auth_id={self.auth_id}, tier={self.tier})>"

    @property
    def is_paid(self) -> bool:
        return self.tier in (TIER_PRO, TIER_VANGUARD)
