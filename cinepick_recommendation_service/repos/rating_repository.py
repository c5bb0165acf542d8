"""Read-only access to user ratings, watchlists and stored preferences."""

import logging
from typing import List

from sqlalchemy import desc
from sqlalchemy.orm import Session

from cinepick_recommendation_service.models import UserPreference, UserRating, UserWatchlistItem

logger = logging.getLogger(__name__)


class RatingRepository:
    """
    Repository for the user activity the pipeline reads.
    """

    def __init__(self, db: Session):
        self.db = db

    # noinspection PyTypeChecker
    def get_user_ratings(self, user_id: str) -> List[UserRating]:
        """Get all ratings for a user, oldest first."""
        return (
            self.db.query(UserRating)
            .filter(UserRating.user_id == user_id)
            .order_by(UserRating.created_at, UserRating.id)
            .all()
        )

    # noinspection PyTypeChecker
    def get_watchlist(self, user_id: str) -> List[UserWatchlistItem]:
        """Get all watchlist entries for a user."""
        return (
            self.db.query(UserWatchlistItem)
            .filter(UserWatchlistItem.user_id == user_id)
            .all()
        )

    def get_preferred_genres(self, user_id: str) -> List[str]:
        """
        Get the genres a user explicitly saved as preferred.

        Returns:
            Genre names, empty when the user has no stored preferences
        """
        preference = (
            self.db.query(UserPreference)
            .filter(UserPreference.user_id == user_id)
            .first()
        )
        if preference is None or not preference.preferred_genres:
            return []
        return list(preference.preferred_genres)

    # noinspection PyTypeChecker
    def get_recent_ratings_excluding(self, user_id: str, limit: int = 10000) -> List[UserRating]:
        """
        Get the most recent ratings made by everyone except one user.

        Args:
            user_id: User to exclude
            limit: Maximum rows to load, newest first

        Returns:
            List of UserRating objects
        """
        return (
            self.db.query(UserRating)
            .filter(UserRating.user_id != user_id)
            .order_by(desc(UserRating.created_at), desc(UserRating.id))
            .limit(limit)
            .all()
        )

    # noinspection PyTypeChecker
    def get_high_ratings_for_users(
            self,
            user_ids: List[str],
            min_rating: int = 8,
            limit: int | None = None
    ) -> List[UserRating]:
        """
        Get ratings at or above a threshold for a set of users.

        Args:
            user_ids: Users to read
            min_rating: Minimum rating (inclusive)
            limit: Optional row cap

        Returns:
            List of UserRating objects, highest rating first
        """
        if not user_ids:
            return []

        query = (
            self.db.query(UserRating)
            .filter(
                UserRating.user_id.in_(user_ids),
                UserRating.rating >= min_rating
            )
            .order_by(desc(UserRating.rating), UserRating.id)
        )
        if limit is not None:
            query = query.limit(limit)

        return query.all()
