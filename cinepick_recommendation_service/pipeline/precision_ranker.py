"""Stage 2: score candidates with a weighted ensemble and keep the best."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Set, Tuple

from cinepick_recommendation_service.config import get_scoring_max_workers
from cinepick_recommendation_service.pipeline.deadline import Deadline, call_before_deadline, gather
from cinepick_recommendation_service.pipeline.types import (
    COLLABORATIVE_SOURCE,
    DEFAULT_WEIGHTS,
    GENRE_SOURCE_PREFIX,
    TRENDING_SOURCE,
    AdaptiveWeights,
    Candidate,
    FeatureBreakdown,
    ScoredItem,
    clamp01,
)
from cinepick_recommendation_service.repos import RatingRepository

logger = logging.getLogger(__name__)

ML_WEIGHT = 0.50
GENRE_WEIGHT = 0.25
COLLABORATIVE_WEIGHT = 0.15
QUALITY_WEIGHT = 0.10

SCORING_TIMEOUT = 10
WEIGHTS_TIMEOUT = 5


def ensemble_score(features: FeatureBreakdown, weights: AdaptiveWeights) -> float:
    """Weighted combination of the relevance signals, clamped to [0, 1]."""
    return clamp01(
        features.ml_score * ML_WEIGHT +
        features.genre_match * weights.genre_match * GENRE_WEIGHT +
        features.collaborative_score * COLLABORATIVE_WEIGHT +
        features.quality_score * weights.rating_quality * QUALITY_WEIGHT
    )


def candidate_features(candidate: Candidate, ml_score: float) -> FeatureBreakdown:
    """Derive the non-ML signals from a candidate's retrieval source."""
    return FeatureBreakdown(
        ml_score=ml_score,
        collaborative_score=0.8 if candidate.source == COLLABORATIVE_SOURCE else 0.0,
        genre_match=0.8 if candidate.source.startswith(GENRE_SOURCE_PREFIX) else 0.3,
        quality_score=candidate.base_score,
        popularity_score=0.9 if candidate.source == TRENDING_SOURCE else 0.5,
    )


class PrecisionRanker:
    """Filters seen items and ranks the rest by ensemble score."""

    def __init__(self, scoring_client, weight_provider, session_factory, max_workers: Optional[int] = None):
        """
        Args:
            scoring_client: ML scoring service (predict_score)
            weight_provider: Adaptive weight source (get_adaptive_weights)
            session_factory: Callable returning a new SQLAlchemy session
            max_workers: Concurrent scoring calls
        """
        self.scoring_client = scoring_client
        self.weight_provider = weight_provider
        self.session_factory = session_factory
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers or get_scoring_max_workers(),
            thread_name_prefix="scoring",
        )

    def rank(
            self,
            candidates: List[Candidate],
            user_id: str,
            limit: int = 200,
            deadline: Optional[Deadline] = None
    ) -> List[ScoredItem]:
        """
        Score and rank candidates.

        Args:
            candidates: Candidate pool
            user_id: User ID
            limit: Maximum items to return
            deadline: Request deadline

        Returns:
            ScoredItems sorted by ensemble_score descending
        """
        deadline = deadline or Deadline.none()
        logger.info(f"[Stage 2] Ranking {len(candidates)} candidates for user {user_id}")

        seen = self._seen_items(user_id)
        unseen = [candidate for candidate in candidates if candidate.key not in seen]
        logger.info(f"  Filtered out {len(candidates) - len(unseen)} rated or watchlisted items")

        if not unseen or limit <= 0:
            return []

        weights = self._weights(user_id, deadline)
        ml_scores = self._ml_scores(unseen, user_id, deadline)

        scored = []
        for candidate, ml_score in zip(unseen, ml_scores):
            features = candidate_features(candidate, ml_score)
            scored.append(ScoredItem(
                tmdb_id=candidate.tmdb_id,
                media_type=candidate.media_type,
                title=candidate.title,
                poster_path=candidate.poster_path,
                base_score=candidate.base_score,
                ensemble_score=ensemble_score(features, weights),
                features=features,
                source_tags=[candidate.source, "ml_score", "adaptive_weights"],
            ))

        scored.sort(key=lambda item: item.ensemble_score, reverse=True)

        logger.info(f"✓ [Stage 2] Ranked {len(scored)} candidates, returning top {min(limit, len(scored))}")
        return scored[:limit]

    def _seen_items(self, user_id: str) -> Set[Tuple[int, str]]:
        db = self.session_factory()
        try:
            repo = RatingRepository(db)
            seen = {(r.tmdb_id, r.media_type) for r in repo.get_user_ratings(user_id)}
            seen.update((w.tmdb_id, w.media_type) for w in repo.get_watchlist(user_id))
            return seen
        finally:
            db.close()

    def _weights(self, user_id: str, deadline: Deadline) -> AdaptiveWeights:
        try:
            return call_before_deadline(
                deadline, WEIGHTS_TIMEOUT, self.weight_provider.get_adaptive_weights, user_id
            )
        except Exception as e:
            logger.warning(f"Failed to get adaptive weights for {user_id}, using defaults: {e}")
            return DEFAULT_WEIGHTS

    def _ml_scores(self, candidates: List[Candidate], user_id: str, deadline: Deadline) -> List[float]:
        futures = [
            self.executor.submit(
                call_before_deadline,
                deadline,
                SCORING_TIMEOUT,
                self.scoring_client.predict_score,
                user_id,
                candidate.tmdb_id,
                candidate.media_type,
            )
            for candidate in candidates
        ]
        results = gather(futures, deadline, "ML scoring calls")

        fallbacks = sum(1 for result in results if result is None)
        if fallbacks:
            logger.warning(f"ML scoring unavailable for {fallbacks}/{len(candidates)} candidates, using base scores")

        return [
            candidate.base_score if result is None else clamp01(float(result))
            for candidate, result in zip(candidates, results)
        ]

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)
