"""Background recording of diversity metrics for served lists."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from cinepick_recommendation_service.ml.diversity_engine import (
    DiversityCandidate,
    DiversityConfig,
    DiversityEngine,
    DiversityMetrics,
)
from cinepick_recommendation_service.pipeline.types import FinalRecommendation
from cinepick_recommendation_service.repos import DiversityMetricsRepository, RatingRepository

logger = logging.getLogger(__name__)

UNTRACKED_USERS = frozenset({"guest", "demo_user", "anonymous"})
PIPELINE_RECOMMENDATION_TYPE = "multi-stage-pipeline"


class DiversityMetricsTracker:
    """Computes and stores diversity metrics, off the request path when asked."""

    def __init__(
            self,
            session_factory,
            engine: Optional[DiversityEngine] = None,
            config: Optional[DiversityConfig] = None
    ):
        self.session_factory = session_factory
        self.engine = engine or DiversityEngine()
        self.config = config or DiversityConfig()
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="diversity-metrics")

    def track(
            self,
            user_id: str,
            recommendations: List[FinalRecommendation],
            recommendation_type: str = PIPELINE_RECOMMENDATION_TYPE
    ) -> Optional[DiversityMetrics]:
        """
        Compute metrics for a served list and store them.

        Args:
            user_id: User the list was served to
            recommendations: Final list
            recommendation_type: Which recommender produced the list

        Returns:
            The stored metrics, or None for untracked users
        """
        if user_id in UNTRACKED_USERS:
            logger.info(f"Skipping diversity metrics for {user_id}")
            return None

        candidates = [
            DiversityCandidate(
                id=f"{rec.tmdb_id}_{rec.media_type}",
                tmdb_id=rec.tmdb_id,
                media_type=rec.media_type,
                score=rec.score,
                genres=list(rec.metadata.genres),
            )
            for rec in recommendations
        ]

        db = self.session_factory()
        try:
            preferred_genres = RatingRepository(db).get_preferred_genres(user_id)
            metrics = self.engine.calculate_metrics(
                candidates, preferred_genres, exploration_rate=self.config.epsilon_exploration
            )
            DiversityMetricsRepository(db).store_metrics(
                user_id=user_id,
                recommendation_type=recommendation_type,
                metrics=metrics.to_dict(),
                diversity_config=self.config.snapshot(),
                recommendation_count=len(recommendations),
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(
            f"✓ Tracked diversity metrics for {user_id}: "
            f"intra={metrics.intra_diversity:.3f}, balance={metrics.genre_balance:.3f}"
        )
        return metrics

    def track_async(
            self,
            user_id: str,
            recommendations: List[FinalRecommendation],
            recommendation_type: str = PIPELINE_RECOMMENDATION_TYPE
    ) -> Future:
        """Queue track() on the background worker; failures are logged only."""
        return self.executor.submit(self._track_logged, user_id, list(recommendations), recommendation_type)

    def _track_logged(self, user_id, recommendations, recommendation_type) -> Optional[DiversityMetrics]:
        try:
            return self.track(user_id, recommendations, recommendation_type)
        except Exception as e:
            logger.error(f"Failed to track diversity metrics for {user_id}: {e}", exc_info=True)
            return None

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
