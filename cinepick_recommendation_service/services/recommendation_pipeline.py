"""Service that runs the multi-stage recommendation pipeline."""
import logging
from typing import Dict, List, Optional

from cinepick_recommendation_service.config import (
    get_pipeline_deadline_seconds,
    get_rerank_seed,
    get_user_context_cache_ttl,
)
from cinepick_recommendation_service.exceptions import InvalidUserIdError
from cinepick_recommendation_service.ml.diversity_engine import DiversityEngine
from cinepick_recommendation_service.pipeline.candidate_generator import CandidateGenerator
from cinepick_recommendation_service.pipeline.deadline import Deadline
from cinepick_recommendation_service.pipeline.metrics_tracker import DiversityMetricsTracker
from cinepick_recommendation_service.pipeline.precision_ranker import PrecisionRanker
from cinepick_recommendation_service.pipeline.reranker import ReRanker
from cinepick_recommendation_service.pipeline.types import FinalRecommendation
from cinepick_recommendation_service.pipeline.user_context import UserContextBuilder, UserContextCache
from cinepick_recommendation_service.repos import DiversityMetricsRepository
from cinepick_recommendation_service.services.metadata_service import MetadataService
from cinepick_recommendation_service.services.scoring_client import ScoringServiceClient
from cinepick_recommendation_service.services.tmdb_client import TmdbClient
from cinepick_recommendation_service.services.weight_provider import create_weight_provider

logger = logging.getLogger(__name__)


def validate_user_id(user_id) -> str:
    """
    Check a user id before any work is done.

    Raises:
        InvalidUserIdError: user_id is missing, blank or not a string
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidUserIdError("user_id must be a non-empty string")
    return user_id


class RecommendationPipeline:
    """
    Candidate generation -> precision ranking -> re-ranking.

    Every stage shares one deadline per request.
    """

    def __init__(
            self,
            context_builder: UserContextBuilder,
            candidate_generator: CandidateGenerator,
            precision_ranker: PrecisionRanker,
            reranker: ReRanker,
            session_factory=None,
            default_deadline_seconds: Optional[float] = None
    ):
        self.context_builder = context_builder
        self.candidate_generator = candidate_generator
        self.precision_ranker = precision_ranker
        self.reranker = reranker
        self.session_factory = session_factory
        self.default_deadline_seconds = default_deadline_seconds

    def get_recommendations(
            self,
            user_id: str,
            candidate_count: int = 2000,
            ranking_limit: int = 200,
            final_limit: int = 50,
            deadline_seconds: Optional[float] = None
    ) -> List[FinalRecommendation]:
        """
        Get recommendations for a user.

        Args:
            user_id: User ID
            candidate_count: Size of the candidate pool
            ranking_limit: Items kept after precision ranking
            final_limit: Maximum recommendations returned
            deadline_seconds: Time budget for the whole request (None uses the default)

        Returns:
            List of FinalRecommendation, at most final_limit long

        Raises:
            InvalidUserIdError: user_id is missing, blank or not a string
        """
        validate_user_id(user_id)

        if final_limit <= 0:
            return []

        seconds = deadline_seconds if deadline_seconds is not None else self.default_deadline_seconds
        deadline = Deadline(seconds)

        logger.info(f"=== Multi-Stage Pipeline for user {user_id} ===")
        logger.info(f"Candidates: {candidate_count} -> Ranking: {ranking_limit} -> Final: {final_limit}")

        context = self.context_builder.build(user_id, deadline=deadline)

        candidates = self.candidate_generator.generate(
            user_id, target_count=candidate_count, deadline=deadline, context=context
        )
        ranked = self.precision_ranker.rank(candidates, user_id, limit=ranking_limit, deadline=deadline)
        final = self.reranker.rerank(ranked, limit=final_limit, deadline=deadline, user_id=user_id)

        logger.info(f"✓ Pipeline complete: {len(final)} recommendations for user {user_id}")
        return final

    def get_diversity_metrics(
            self,
            user_id: str,
            limit: int = 20,
            recommendation_type: Optional[str] = None
    ) -> Dict:
        """
        Get a user's diversity metrics history and averages.

        Returns:
            Dict with user_id, history (newest first) and averages
        """
        validate_user_id(user_id)

        db = self.session_factory()
        try:
            repo = DiversityMetricsRepository(db)
            history = [
                {
                    'id': record.id,
                    'recommendation_type': record.recommendation_type,
                    'intra_diversity': record.intra_diversity,
                    'genre_balance': record.genre_balance,
                    'serendipity_score': record.serendipity_score,
                    'exploration_rate': record.exploration_rate,
                    'coverage_score': record.coverage_score,
                    'diversity_config': record.diversity_config,
                    'recommendation_count': record.recommendation_count,
                    'created_at': record.created_at,
                }
                for record in repo.get_user_metrics(user_id, limit=limit, recommendation_type=recommendation_type)
            ]
            summary = repo.get_user_summary(user_id)
        finally:
            db.close()

        return {
            'user_id': user_id,
            'count': len(history),
            'history': history,
            'total_records': summary['total_records'],
            'averages': summary['averages'],
        }


def create_pipeline(session_factory=None) -> RecommendationPipeline:
    """
    Build the pipeline with its production collaborators.

    Args:
        session_factory: Callable returning a new SQLAlchemy session
            (defaults to models.database.SessionLocal)

    Returns:
        RecommendationPipeline
    """
    if session_factory is None:
        from cinepick_recommendation_service.models.database import SessionLocal
        session_factory = SessionLocal

    tmdb_client = TmdbClient()
    metadata_service = MetadataService(session_factory, tmdb_client=tmdb_client)

    ttl = get_user_context_cache_ttl()
    cache = UserContextCache(ttl) if ttl > 0 else None
    context_builder = UserContextBuilder(session_factory, metadata_service, cache=cache)

    engine = DiversityEngine()

    pipeline = RecommendationPipeline(
        context_builder=context_builder,
        candidate_generator=CandidateGenerator(tmdb_client, session_factory, context_builder),
        precision_ranker=PrecisionRanker(ScoringServiceClient(), create_weight_provider(), session_factory),
        reranker=ReRanker(
            metadata_service,
            engine=engine,
            metrics_tracker=DiversityMetricsTracker(session_factory, engine=engine),
            seed=get_rerank_seed(),
        ),
        session_factory=session_factory,
        default_deadline_seconds=get_pipeline_deadline_seconds(),
    )

    logger.info("Initialized RecommendationPipeline")
    return pipeline
