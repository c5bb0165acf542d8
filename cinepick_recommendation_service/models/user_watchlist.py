"""Items a user has saved to watch later"""
from sqlalchemy import Column, Integer, DateTime, String, Index
from datetime import datetime, UTC

from cinepick_recommendation_service.models.base import Base


class UserWatchlistItem(Base):
    """Item on a user's watchlist."""
    __tablename__ = 'user_watchlist'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    tmdb_id = Column(Integer, nullable=False)
    media_type = Column(String(10), nullable=False)
    title = Column(String(255), nullable=False)
    poster_path = Column(String(255), nullable=True)

    added_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("idx_user_watchlist_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<UserWatchlistItem(user_id='{self.user_id}', tmdb_id={self.tmdb_id})>"
