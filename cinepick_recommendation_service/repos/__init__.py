"""Repository classes"""

from cinepick_recommendation_service.repos.diversity_metrics_repository import DiversityMetricsRepository
from cinepick_recommendation_service.repos.metadata_repository import MetadataRepository
from cinepick_recommendation_service.repos.rating_repository import RatingRepository

__all__ = [
    "DiversityMetricsRepository",
    "MetadataRepository",
    "RatingRepository",
]
