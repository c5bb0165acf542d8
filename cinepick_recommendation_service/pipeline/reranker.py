"""Stage 3: diversify, explore, enrich and explain the ranked list."""

import logging
from typing import Dict, List, Optional

import numpy as np

from cinepick_recommendation_service.ml.diversity_engine import (
    DiversityCandidate,
    DiversityEngine,
    EpsilonGreedyExplorer,
    GenreBalancer,
    candidate_similarity,
)
from cinepick_recommendation_service.pipeline.deadline import Deadline
from cinepick_recommendation_service.pipeline.types import (
    FinalRecommendation,
    ItemMetadata,
    ScoredItem,
    clamp01,
)

logger = logging.getLogger(__name__)

PIPELINE_STRATEGY = "pipeline"


def generate_reasons(item: ScoredItem) -> List[str]:
    """Human-readable explanations for why an item was recommended."""
    features = item.features
    reasons = []

    if features.ml_score > 0.7:
        reasons.append(f"Strong model match ({features.ml_score * 100:.0f}%)")
    if features.genre_match > 0.5:
        reasons.append("Matches your favorite genres")
    if features.collaborative_score > 0.5:
        reasons.append("Loved by similar users")
    if features.quality_score > 0.8:
        reasons.append("Highly rated")

    if not reasons:
        reasons.append("Recommended for you")

    return reasons


def _as_candidate(item: ScoredItem) -> DiversityCandidate:
    # The primary source stands in for the genre
    return DiversityCandidate(
        id=f"{item.tmdb_id}_{item.media_type}",
        tmdb_id=item.tmdb_id,
        media_type=item.media_type,
        score=item.ensemble_score,
        genres=[item.primary_source],
    )


class ReRanker:
    """
    Turns the ranked list into the final recommendations.

    MMR over the top 2*limit items, source balancing, epsilon-greedy
    exploration, one batched metadata lookup, then diversity scores and
    reasons. Metrics are recorded in the background when a tracker is set.
    """

    def __init__(
            self,
            metadata_provider,
            engine: Optional[DiversityEngine] = None,
            metrics_tracker=None,
            seed: Optional[int] = None,
            lambda_: float = 0.7,
            max_consecutive_same_source: int = 3,
            balance_penalty: float = 0.8,
            exploration_rate: float = 0.1,
            exploration_pool_start: float = 0.5
    ):
        self.metadata_provider = metadata_provider
        self.engine = engine or DiversityEngine()
        self.metrics_tracker = metrics_tracker
        self.seed = seed
        self.lambda_ = lambda_
        self.max_consecutive_same_source = max_consecutive_same_source
        self.exploration_rate = exploration_rate
        self.source_balancer = GenreBalancer(penalty=balance_penalty)
        self.explorer = EpsilonGreedyExplorer(pool_start=exploration_pool_start)

    def rerank(
            self,
            scored: List[ScoredItem],
            limit: int = 50,
            deadline: Optional[Deadline] = None,
            rng: Optional[np.random.Generator] = None,
            user_id: Optional[str] = None
    ) -> List[FinalRecommendation]:
        """
        Produce the final recommendation list.

        Args:
            scored: Ranked items, best first
            limit: Maximum recommendations
            deadline: Request deadline for the metadata lookup
            rng: Random generator; a fresh one seeded from `seed` when omitted
            user_id: User to record metrics for

        Returns:
            At most `limit` FinalRecommendations
        """
        if limit <= 0 or not scored:
            return []

        rng = rng if rng is not None else np.random.default_rng(self.seed)
        logger.info(f"[Stage 3] Re-ranking {len(scored)} items with diversity")

        by_id: Dict[str, ScoredItem] = {}
        candidates = []
        for item in scored[:2 * limit]:
            candidate = _as_candidate(item)
            by_id[candidate.id] = item
            candidates.append(candidate)

        diversified = self.engine.mmr.apply(candidates, len(candidates), self.lambda_)
        balanced = self.source_balancer.apply(diversified, self.max_consecutive_same_source)
        explored = self.explorer.apply(balanced, self.exploration_rate, rng=rng)

        final = explored[:limit]
        items = [by_id[candidate.id] for candidate in final]
        metadata = self._enrich(items, deadline)

        recommendations = []
        for candidate, item, details in zip(final, items, metadata):
            recommendations.append(FinalRecommendation(
                tmdb_id=item.tmdb_id,
                media_type=item.media_type,
                title=item.title,
                poster_path=details.poster_path or item.poster_path,
                score=clamp01(candidate.score),
                ensemble_score=item.ensemble_score,
                diversity_score=self._diversity_score(candidate, final),
                features=item.features,
                source_tags=list(item.source_tags),
                reasons=generate_reasons(item),
                strategy=PIPELINE_STRATEGY,
                metadata=details,
            ))

        logger.info(f"✓ [Stage 3] Final {len(recommendations)} recommendations")

        if self.metrics_tracker is not None and user_id is not None:
            self.metrics_tracker.track_async(user_id, recommendations)

        return recommendations

    def _enrich(self, items: List[ScoredItem], deadline: Optional[Deadline]) -> List[ItemMetadata]:
        try:
            results = self.metadata_provider.batch_metadata([item.to_ref() for item in items], deadline=deadline)
        except Exception as e:
            logger.warning(f"Metadata lookup failed, using defaults: {e}")
            results = [None] * len(items)

        if len(results) != len(items):
            logger.warning(f"Metadata lookup returned {len(results)} results for {len(items)} items, using defaults")
            results = [None] * len(items)

        return [
            details if details is not None else ItemMetadata(poster_path=item.poster_path)
            for item, details in zip(items, results)
        ]

    @staticmethod
    def _diversity_score(candidate: DiversityCandidate, final: List[DiversityCandidate]) -> float:
        others = [other for other in final if other.id != candidate.id]
        total = sum(candidate_similarity(candidate, other) for other in others)
        average = total / max(len(final) - 1, 1)
        return clamp01(1 - average)
