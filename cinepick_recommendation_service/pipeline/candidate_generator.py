"""Stage 1: retrieve a broad candidate pool from several strategies."""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from cinepick_recommendation_service.config import get_fetch_max_workers
from cinepick_recommendation_service.ml.similarity_computer import SimilarityComputer
from cinepick_recommendation_service.pipeline.deadline import Deadline, call_before_deadline, gather
from cinepick_recommendation_service.pipeline.types import (
    COLLABORATIVE_SOURCE,
    GENRE_SOURCE_PREFIX,
    TOP_RATED_SOURCE,
    TRENDING_SOURCE,
    Candidate,
    UserContext,
)
from cinepick_recommendation_service.repos import RatingRepository

logger = logging.getLogger(__name__)

# TMDB movie genre ids
GENRE_IDS: Dict[str, int] = {
    "Action": 28,
    "Adventure": 12,
    "Animation": 16,
    "Comedy": 35,
    "Crime": 80,
    "Documentary": 99,
    "Drama": 18,
    "Family": 10751,
    "Fantasy": 14,
    "History": 36,
    "Horror": 27,
    "Music": 10402,
    "Mystery": 9648,
    "Romance": 10749,
    "Science Fiction": 878,
    "TV Movie": 10770,
    "Thriller": 53,
    "War": 10752,
    "Western": 37,
}

STRATEGY_SHARES = {
    "genre": 0.4,
    "collaborative": 0.3,
    "trending": 0.2,
    "top_rated": 0.1,
}

GENRES_TO_FETCH = 3
PAGES_PER_GENRE = 5
TRENDING_PAGES = 10
TOP_RATED_PAGES = 10
MIN_VOTE_COUNT = 100
MAX_RATINGS_TO_LOAD = 10000
SIMILAR_USER_LIMIT = 10
HIGH_RATING_THRESHOLD = 8
REQUEST_TIMEOUT = 10

GENRE_BASE_SCORE = 0.8
COLLABORATIVE_BASE_SCORE = 0.7
TRENDING_BASE_SCORE = 0.6
TOP_RATED_BASE_SCORE = 0.7


def deduplicate_candidates(candidates: List[Candidate]) -> List[Candidate]:
    """
    Keep one candidate per (tmdb_id, media_type).

    The higher base_score wins (the first seen on ties); the surviving
    candidate takes the position of the key's first occurrence.
    """
    seen: Dict[Tuple[int, str], Candidate] = {}
    for candidate in candidates:
        existing = seen.get(candidate.key)
        if existing is None or existing.base_score < candidate.base_score:
            seen[candidate.key] = candidate
    return list(seen.values())


class CandidateGenerator:
    """
    Runs genre, collaborative, trending and top-rated retrieval concurrently.
    """

    def __init__(
            self,
            tmdb_client,
            session_factory,
            context_builder,
            similarity_computer: Optional[SimilarityComputer] = None,
            max_workers: Optional[int] = None
    ):
        """
        Args:
            tmdb_client: Content provider (TmdbClient interface)
            session_factory: Callable returning a new SQLAlchemy session
            context_builder: UserContextBuilder used when no context is passed
            similarity_computer: Similar-user search
            max_workers: Size of the page fetch pool
        """
        self.tmdb_client = tmdb_client
        self.session_factory = session_factory
        self.context_builder = context_builder
        self.similarity_computer = similarity_computer or SimilarityComputer(
            min_common_items=2, max_similar_users=SIMILAR_USER_LIMIT
        )
        self.strategy_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="retrieval")
        self.page_executor = ThreadPoolExecutor(
            max_workers=max_workers or get_fetch_max_workers(),
            thread_name_prefix="retrieval-page",
        )

    def generate(
            self,
            user_id: str,
            target_count: int = 2000,
            deadline: Optional[Deadline] = None,
            context: Optional[UserContext] = None
    ) -> List[Candidate]:
        """
        Build a deduplicated candidate pool.

        Args:
            user_id: User ID
            target_count: Maximum pool size
            deadline: Request deadline
            context: Prebuilt user context

        Returns:
            Unique candidates, at most target_count
        """
        deadline = deadline or Deadline.none()
        if target_count <= 0:
            return []

        context = context or self.context_builder.build(user_id, deadline=deadline)
        logger.info(f"[Stage 1] Generating {target_count} candidates for user {user_id}")

        shares = {name: int(math.floor(target_count * share)) for name, share in STRATEGY_SHARES.items()}

        futures = [
            self.strategy_executor.submit(self._genre_retrieval, context, shares["genre"], deadline),
            self.strategy_executor.submit(
                self._collaborative_retrieval, user_id, shares["collaborative"], deadline
            ),
            self.strategy_executor.submit(self._trending_retrieval, shares["trending"], deadline),
            self.strategy_executor.submit(self._top_rated_retrieval, shares["top_rated"], deadline),
        ]
        branches = gather(futures, deadline, "retrieval strategies")

        all_candidates: List[Candidate] = []
        for name, branch in zip(STRATEGY_SHARES, branches):
            branch = branch or []
            logger.info(f"  {name}: {len(branch)} candidates")
            all_candidates.extend(branch)

        unique = deduplicate_candidates(all_candidates)
        logger.info(
            f"✓ [Stage 1] Generated {len(unique)} unique candidates from {len(all_candidates)} total"
        )
        return unique[:target_count]

    # ===== STRATEGIES =====

    def _genre_retrieval(self, context: UserContext, limit: int, deadline: Deadline) -> List[Candidate]:
        genres = []
        for genre in context.favorite_genres[:GENRES_TO_FETCH]:
            if genre in GENRE_IDS:
                genres.append(genre)
            else:
                logger.info(f"Skipping unknown genre: {genre}")

        requests_to_make = [
            (genre, page) for genre in genres for page in range(1, PAGES_PER_GENRE + 1)
        ]
        futures = [
            self.page_executor.submit(
                call_before_deadline,
                deadline,
                REQUEST_TIMEOUT,
                self.tmdb_client.discover_movies,
                GENRE_IDS[genre],
                page,
                MIN_VOTE_COUNT,
            )
            for genre, page in requests_to_make
        ]
        pages = gather(futures, deadline, "genre pages")

        candidates = []
        for (genre, _), page in zip(requests_to_make, pages):
            for result in self._results(page):
                candidates.append(self._candidate(
                    result, "movie", f"{GENRE_SOURCE_PREFIX}{genre}", GENRE_BASE_SCORE
                ))

        return candidates[:limit]

    def _collaborative_retrieval(self, user_id: str, limit: int, deadline: Deadline) -> List[Candidate]:
        if limit <= 0:
            return []

        db = self.session_factory()
        try:
            repo = RatingRepository(db)

            user_ratings: Dict[Tuple[int, str], float] = {}
            for rating in repo.get_user_ratings(user_id):
                user_ratings[(rating.tmdb_id, rating.media_type)] = rating.rating
            if not user_ratings:
                return []

            others = SimilarityComputer.ratings_frame(
                repo.get_recent_ratings_excluding(user_id, limit=MAX_RATINGS_TO_LOAD)
            )
            similar_users = self.similarity_computer.find_similar_users(user_ratings, others)
            if not similar_users:
                logger.info(f"No similar users found for {user_id}")
                return []

            high_ratings = repo.get_high_ratings_for_users(
                [similar_user for similar_user, _ in similar_users],
                min_rating=HIGH_RATING_THRESHOLD,
                limit=limit,
            )
            return [
                Candidate(
                    tmdb_id=rating.tmdb_id,
                    media_type=rating.media_type,
                    title=rating.title,
                    poster_path=rating.poster_path,
                    source=COLLABORATIVE_SOURCE,
                    base_score=COLLABORATIVE_BASE_SCORE,
                )
                for rating in high_ratings
            ]
        finally:
            db.close()

    def _trending_retrieval(self, limit: int, deadline: Deadline) -> List[Candidate]:
        pages = self._fetch_pages(self.tmdb_client.get_trending, TRENDING_PAGES, deadline, "trending pages")

        candidates = []
        for page in pages:
            for result in self._results(page):
                media_type = result.get("media_type") or "movie"
                if media_type == "person":
                    continue
                candidates.append(self._candidate(result, media_type, TRENDING_SOURCE, TRENDING_BASE_SCORE))

        return candidates[:limit]

    def _top_rated_retrieval(self, limit: int, deadline: Deadline) -> List[Candidate]:
        pages = self._fetch_pages(
            self.tmdb_client.get_top_rated_movies, TOP_RATED_PAGES, deadline, "top rated pages"
        )

        candidates = []
        for page in pages:
            for result in self._results(page):
                candidates.append(self._candidate(result, "movie", TOP_RATED_SOURCE, TOP_RATED_BASE_SCORE))

        return candidates[:limit]

    # ===== HELPERS =====

    def _fetch_pages(self, fetch: Callable, page_count: int, deadline: Deadline, description: str) -> list:
        futures = [
            self.page_executor.submit(call_before_deadline, deadline, REQUEST_TIMEOUT, fetch, page)
            for page in range(1, page_count + 1)
        ]
        return gather(futures, deadline, description)

    @staticmethod
    def _results(page: Optional[Dict]) -> List[Dict]:
        if not page:
            return []
        return [result for result in page.get("results", []) if result.get("id") is not None]

    @staticmethod
    def _candidate(result: Dict, media_type: str, source: str, base_score: float) -> Candidate:
        return Candidate(
            tmdb_id=int(result["id"]),
            media_type=media_type,
            title=result.get("title") or result.get("name") or "Unknown",
            poster_path=result.get("poster_path"),
            source=source,
            base_score=base_score,
        )

    def shutdown(self) -> None:
        self.strategy_executor.shutdown(wait=False, cancel_futures=True)
        self.page_executor.shutdown(wait=False, cancel_futures=True)
