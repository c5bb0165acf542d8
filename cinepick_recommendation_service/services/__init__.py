"""Service classes"""

from .metadata_service import MetadataService
from .recommendation_pipeline import RecommendationPipeline, create_pipeline
from .scoring_client import ScoringServiceClient
from .tmdb_client import TmdbClient
from .weight_provider import HttpWeightProvider, StaticWeightProvider

__all__ = [
    "HttpWeightProvider",
    "MetadataService",
    "RecommendationPipeline",
    "ScoringServiceClient",
    "StaticWeightProvider",
    "TmdbClient",
    "create_pipeline",
]
