"""SQLAlchemy models"""

from cinepick_recommendation_service.models.base import Base
from cinepick_recommendation_service.models.diversity_metric import DiversityMetricRecord
from cinepick_recommendation_service.models.media_metadata import MediaMetadata
from cinepick_recommendation_service.models.user_preference import UserPreference
from cinepick_recommendation_service.models.user_rating import UserRating
from cinepick_recommendation_service.models.user_watchlist import UserWatchlistItem

__all__ = [
    "Base",
    "DiversityMetricRecord",
    "MediaMetadata",
    "UserPreference",
    "UserRating",
    "UserWatchlistItem",
]
