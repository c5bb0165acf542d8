"""Stored genre preferences for a user"""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.mysql import JSON
from datetime import datetime, UTC

from cinepick_recommendation_service.models.base import Base


class UserPreference(Base):
    """Explicit preferences a user saved in their profile."""
    __tablename__ = 'user_preferences'

    user_id = Column(String(64), primary_key=True)
    preferred_genres = Column(JSON, nullable=True)
    disliked_genres = Column(JSON, nullable=True)

    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    def __repr__(self):
        return f"<UserPreference(user_id='{self.user_id}', preferred_genres={self.preferred_genres})>"
