"""A user's rating of a movie or TV show."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Index, Integer, String

from cinepick_recommendation_service.models.base import Base


class UserRating(Base):
    """A user's 1-10 rating of a movie or TV show."""

    __tablename__ = "user_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    tmdb_id = Column(Integer, nullable=False)
    media_type = Column(String(10), nullable=False)  # "movie" or "tv"
    title = Column(String(255), nullable=False)
    poster_path = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("idx_user_ratings_user_id", "user_id"),
        Index("idx_user_ratings_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<UserRating(user_id='{self.user_id}', tmdb_id={self.tmdb_id}, "
            f"media_type='{self.media_type}', rating={self.rating})>"
        )
