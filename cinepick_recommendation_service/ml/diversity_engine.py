"""
Diversity algorithms for recommendation lists.

Maximal Marginal Relevance, greedy DPP-style selection, genre balancing,
epsilon-greedy exploration and serendipity injection, plus the metrics used
to monitor how diverse a served list was. Every algorithm returns a new list
and never mutates its input; score changes produce copies.
"""
import math
import logging
from collections import Counter
from dataclasses import dataclass, field, replace, asdict
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.linalg import lu_factor

from cinepick_recommendation_service.ml.similarity_computer import embedding_similarity, jaccard_similarity

logger = logging.getLogger(__name__)

DIVERSITY_METRICS = ('mmr', 'dpp', 'hybrid')
DPP_MAX_CANDIDATES = 50
HYBRID_DPP_LIMIT = 30


@dataclass(frozen=True)
class DiversityCandidate:
    """An item as seen by the diversity algorithms."""

    id: str
    tmdb_id: int
    media_type: str
    score: float
    genres: List[str] = field(default_factory=list)
    embedding: Optional[Sequence[float]] = None

    @property
    def primary_genre(self) -> str:
        return self.genres[0] if self.genres else 'unknown'


@dataclass(frozen=True)
class DiversityConfig:
    """
    Per-call diversity settings.

    lambda_ balances relevance (1.0) against diversity (0.0).
    """

    lambda_: float = 0.7
    epsilon_exploration: float = 0.1
    max_consecutive_same_genre: int = 3
    serendipity_rate: float = 0.15
    diversity_metric: str = 'mmr'

    def __post_init__(self):
        for name in ('lambda_', 'epsilon_exploration', 'serendipity_rate'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.max_consecutive_same_genre < 1:
            raise ValueError("max_consecutive_same_genre must be at least 1")
        if self.diversity_metric not in DIVERSITY_METRICS:
            raise ValueError(f"diversity_metric must be one of {DIVERSITY_METRICS}")

    def snapshot(self) -> Dict:
        """JSON-friendly copy stored next to metrics."""
        return {
            'lambda': self.lambda_,
            'epsilon_exploration': self.epsilon_exploration,
            'max_consecutive_same_genre': self.max_consecutive_same_genre,
            'serendipity_rate': self.serendipity_rate,
            'diversity_metric': self.diversity_metric,
        }


@dataclass
class DiversityMetrics:
    """Diversity measurements for one list."""

    intra_diversity: float
    genre_balance: float
    serendipity_score: float
    exploration_rate: float
    coverage_score: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def candidate_similarity(a: DiversityCandidate, b: DiversityCandidate) -> float:
    """Embedding cosine when both items have one, otherwise genre Jaccard."""
    if a.embedding is not None and b.embedding is not None:
        return embedding_similarity(a.embedding, b.embedding)
    return jaccard_similarity(a.genres, b.genres)


def _interleave(main: list, extras: list) -> list:
    """Insert extras after every `interval` main items; leftovers go last."""
    if not extras:
        return list(main)

    interval = max(1, len(main) // len(extras))
    result = []
    extra_index = 0
    for i, item in enumerate(main):
        result.append(item)
        if (i + 1) % interval == 0 and extra_index < len(extras):
            result.append(extras[extra_index])
            extra_index += 1

    result.extend(extras[extra_index:])
    return result


class MMRDiversifier:
    """Maximal Marginal Relevance selection."""

    def apply(
        self,
        candidates: Sequence[DiversityCandidate],
        limit: int,
        lambda_: float = 0.7
    ) -> List[DiversityCandidate]:
        """
        Select up to `limit` items balancing relevance and novelty.

        The highest-scoring candidate seeds the selection (first wins on ties).
        Each following pick maximizes
        lambda * score - (1 - lambda) * max similarity to the selected items.

        Args:
            candidates: Items to choose from
            limit: Maximum items to select
            lambda_: Relevance weight in [0, 1]

        Returns:
            Selected items in pick order
        """
        if not candidates or limit <= 0:
            return []

        remaining = list(candidates)
        seed_index = max(range(len(remaining)), key=lambda i: (remaining[i].score, -i))
        selected = [remaining.pop(seed_index)]

        # Running max similarity of each remaining item to the selected set
        max_similarity = [candidate_similarity(c, selected[0]) for c in remaining]

        while len(selected) < limit and remaining:
            best_index = 0
            best_score = -math.inf
            for i, candidate in enumerate(remaining):
                mmr_score = lambda_ * candidate.score - (1 - lambda_) * max_similarity[i]
                if mmr_score > best_score:
                    best_score = mmr_score
                    best_index = i

            chosen = remaining.pop(best_index)
            max_similarity.pop(best_index)
            selected.append(chosen)

            max_similarity = [
                max(current, candidate_similarity(c, chosen))
                for current, c in zip(max_similarity, remaining)
            ]

        return selected


class SumAbsDeterminant:
    """
    Cheap determinant proxy: the sum of absolute entries of the submatrix.

    A single index returns its diagonal entry; the empty set returns 1.
    """

    def __call__(self, kernel: np.ndarray, indices: Sequence[int]) -> float:
        if not indices:
            return 1.0
        if len(indices) == 1:
            return float(kernel[indices[0], indices[0]])
        sub = kernel[np.ix_(indices, indices)]
        return float(np.abs(sub).sum())


class LUDeterminant:
    """Exact determinant of the submatrix via LU decomposition."""

    def __call__(self, kernel: np.ndarray, indices: Sequence[int]) -> float:
        if not indices:
            return 1.0
        sub = kernel[np.ix_(indices, indices)]
        lu, piv = lu_factor(sub, check_finite=False)
        swaps = int(np.sum(piv != np.arange(len(piv))))
        sign = -1.0 if swaps % 2 else 1.0
        return float(sign * np.prod(np.diag(lu)))


class DPPDiversifier:
    """Greedy Determinantal-Point-Process-style selection."""

    def __init__(self, determinant=None, max_candidates: int = DPP_MAX_CANDIDATES):
        """
        Args:
            determinant: Callable (kernel, indices) -> float; SumAbsDeterminant by default
            max_candidates: Kernel size cap; only the first items are considered
        """
        self.determinant = determinant or SumAbsDeterminant()
        self.max_candidates = max_candidates

    def build_kernel(self, candidates: Sequence[DiversityCandidate]) -> np.ndarray:
        """Quality on the diagonal, quality-scaled dissimilarity elsewhere."""
        n = len(candidates)
        scores = np.array([c.score for c in candidates], dtype=float)
        kernel = np.empty((n, n), dtype=float)
        for i in range(n):
            kernel[i, i] = scores[i]
            for j in range(i + 1, n):
                sim = jaccard_similarity(candidates[i].genres, candidates[j].genres)
                value = math.sqrt(max(scores[i] * scores[j], 0.0)) * (1 - sim)
                kernel[i, j] = value
                kernel[j, i] = value
        return kernel

    def apply(self, candidates: Sequence[DiversityCandidate], limit: int) -> List[DiversityCandidate]:
        """
        Greedily grow a set maximizing the determinant strategy.

        Args:
            candidates: Items to choose from (only the first max_candidates count)
            limit: Maximum items to select

        Returns:
            Selected items in pick order
        """
        subset = list(candidates[:self.max_candidates])
        if not subset or limit <= 0:
            return []

        kernel = self.build_kernel(subset)
        selected_indices: List[int] = []

        for _ in range(min(limit, len(subset))):
            best_index = -1
            best_det = -math.inf
            for j in range(len(subset)):
                if j in selected_indices:
                    continue
                det = self.determinant(kernel, selected_indices + [j])
                if det > best_det:
                    best_det = det
                    best_index = j
            if best_index < 0:
                break
            selected_indices.append(best_index)

        return [subset[i] for i in selected_indices]


class GenreBalancer:
    """Penalizes long runs of the same primary genre."""

    def __init__(self, penalty: float = 0.7):
        self.penalty = penalty

    def apply(
        self,
        items: Sequence[DiversityCandidate],
        max_consecutive: int = 3
    ) -> List[DiversityCandidate]:
        """
        Penalize items beyond `max_consecutive` in a same-genre run, then re-sort.

        Args:
            items: Ordered items
            max_consecutive: Longest run left untouched

        Returns:
            Copies re-sorted by score, descending (stable)
        """
        result = []
        previous_genre = None
        run_length = 0

        for item in items:
            genre = item.primary_genre
            run_length = run_length + 1 if genre == previous_genre else 1
            previous_genre = genre

            if run_length > max_consecutive:
                item = replace(item, score=item.score * self.penalty)
            result.append(item)

        return sorted(result, key=lambda c: c.score, reverse=True)

    @staticmethod
    def calculate_genre_diversity(items: Sequence[DiversityCandidate]) -> float:
        """
        Shannon entropy (base 2) of the genre distribution.

        Genre frequencies are divided by the number of items.
        """
        if not items:
            return 0.0

        counts = Counter(genre for item in items for genre in item.genres)
        total = len(items)

        entropy = 0.0
        for count in counts.values():
            p = count / total
            entropy -= p * math.log2(p)

        return max(entropy, 0.0)


class EpsilonGreedyExplorer:
    """Reserves a fraction of the list for lower-ranked items."""

    def __init__(self, pool_start: float = 0.3):
        """
        Args:
            pool_start: Fraction of the list after which exploration items are drawn
        """
        self.pool_start = pool_start

    def apply(
        self,
        items: Sequence[DiversityCandidate],
        epsilon: float = 0.1,
        rng: Optional[np.random.Generator] = None
    ) -> list:
        """
        Interleave randomly sampled lower-ranked items into the top of the list.

        Args:
            items: Ordered items (any type)
            epsilon: Fraction of the list reserved for exploration
            rng: Random generator; fresh entropy when omitted

        Returns:
            New list with the same length as the input
        """
        items = list(items)
        n = len(items)
        k = int(math.floor(n * epsilon))
        if k == 0:
            return items

        rng = rng if rng is not None else np.random.default_rng()

        pool_offset = int(math.floor(n * self.pool_start))
        pool_size = n - pool_offset
        sample_size = min(k, pool_size)
        if sample_size <= 0:
            return items

        sampled = [pool_offset + int(i) for i in rng.choice(pool_size, size=sample_size, replace=False)]
        sampled_set = set(sampled)

        exploitation = [item for i, item in enumerate(items) if i not in sampled_set]
        exploration = [items[i] for i in sampled]

        return _interleave(exploitation, exploration)


class SerendipityInjector:
    """Surfaces items that overlap little with a user's known genres."""

    def apply(
        self,
        items: Sequence[DiversityCandidate],
        user_genre_prefs: Sequence[str],
        rate: float = 0.15
    ) -> List[DiversityCandidate]:
        """
        Move the best surprising items to evenly spaced slots.

        An item is surprising when at most one of its genres is preferred.

        Args:
            items: Ordered items
            user_genre_prefs: Genres the user is known to like
            rate: Fraction of the list to fill with surprising items

        Returns:
            Reordered list containing every input item exactly once
        """
        items = list(items)
        count = int(math.floor(len(items) * rate))
        if count == 0:
            return items

        prefs = set(user_genre_prefs)
        surprising = [
            i for i, item in enumerate(items)
            if sum(1 for genre in item.genres if genre in prefs) <= 1
        ]
        chosen = sorted(surprising, key=lambda i: items[i].score, reverse=True)[:count]
        if not chosen:
            return items

        chosen_set = set(chosen)
        main = [item for i, item in enumerate(items) if i not in chosen_set]

        return _interleave(main, [items[i] for i in chosen])


class DiversityEngine:
    """
    Runs the diversity algorithms in sequence.

    Components are injectable so callers can swap the DPP determinant or
    the balancing penalty.
    """

    def __init__(
        self,
        mmr: Optional[MMRDiversifier] = None,
        dpp: Optional[DPPDiversifier] = None,
        genre_balancer: Optional[GenreBalancer] = None,
        explorer: Optional[EpsilonGreedyExplorer] = None,
        serendipity: Optional[SerendipityInjector] = None
    ):
        self.mmr = mmr or MMRDiversifier()
        self.dpp = dpp or DPPDiversifier()
        self.genre_balancer = genre_balancer or GenreBalancer()
        self.explorer = explorer or EpsilonGreedyExplorer()
        self.serendipity = serendipity or SerendipityInjector()

    def apply_diversity(
        self,
        candidates: Sequence[DiversityCandidate],
        config: DiversityConfig,
        user_genre_prefs: Optional[Sequence[str]] = None,
        rng: Optional[np.random.Generator] = None
    ) -> List[DiversityCandidate]:
        """
        Diversify a ranked list.

        Steps: primary algorithm (mmr, dpp or hybrid), genre balancing,
        exploration, then serendipity when the user has genre preferences.

        Args:
            candidates: Ranked items
            config: Diversity settings
            user_genre_prefs: User's preferred genres
            rng: Random generator for exploration

        Returns:
            Diversified list
        """
        results = list(candidates)
        logger.info(f"Diversifying {len(results)} candidates ({config.diversity_metric})")

        if config.diversity_metric == 'mmr':
            results = self.mmr.apply(results, len(results), config.lambda_)
        elif config.diversity_metric == 'dpp':
            head = results[:self.dpp.max_candidates]
            results = self.dpp.apply(head, len(head)) + results[len(head):]
        else:
            results = self.mmr.apply(results, len(results), config.lambda_)
            head = results[:HYBRID_DPP_LIMIT]
            results = self.dpp.apply(head, len(head)) + results[len(head):]

        results = self.genre_balancer.apply(results, config.max_consecutive_same_genre)
        results = self.explorer.apply(results, config.epsilon_exploration, rng=rng)

        if user_genre_prefs:
            results = self.serendipity.apply(results, user_genre_prefs, config.serendipity_rate)

        logger.info(f"✓ Diversified to {len(results)} items")
        return results

    def calculate_metrics(
        self,
        items: Sequence[DiversityCandidate],
        user_genre_prefs: Sequence[str],
        exploration_rate: float = 0.1
    ) -> DiversityMetrics:
        """
        Measure how diverse a list is.

        Args:
            items: Served items
            user_genre_prefs: User's preferred genres
            exploration_rate: Exploration rate the list was built with

        Returns:
            DiversityMetrics
        """
        items = list(items)

        total_dissimilarity = 0.0
        pair_count = 0
        for i in range(len(items)):
            for j in range(i + 1, len(items)):
                total_dissimilarity += 1 - jaccard_similarity(items[i].genres, items[j].genres)
                pair_count += 1
        intra_diversity = total_dissimilarity / pair_count if pair_count else 0.0

        prefs = set(user_genre_prefs)
        serendipitous = sum(1 for item in items if not any(g in prefs for g in item.genres))
        serendipity_score = serendipitous / len(items) if items else 0.0

        all_genres = {genre for item in items for genre in item.genres}
        coverage = len(all_genres) / max(len(user_genre_prefs), 1)

        return DiversityMetrics(
            intra_diversity=intra_diversity,
            genre_balance=self.genre_balancer.calculate_genre_diversity(items),
            serendipity_score=serendipity_score,
            exploration_rate=exploration_rate,
            coverage_score=min(coverage, 1.0),
        )
