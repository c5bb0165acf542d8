"""Builds a compact taste profile for one user."""

import logging
import threading
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from cinepick_recommendation_service.pipeline.deadline import Deadline
from cinepick_recommendation_service.pipeline.types import MediaRef, UserContext
from cinepick_recommendation_service.repos import RatingRepository

logger = logging.getLogger(__name__)

FAVORITE_GENRE_COUNT = 5
RECENT_RATING_COUNT = 10
DEFAULT_AVERAGE_RATING = 7.0


class UserContextCache:
    """Thread-safe user context cache with a fixed time-to-live."""

    def __init__(self, ttl_seconds: float, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, UserContext]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[UserContext]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            expires_at, context = entry
            if self._clock() >= expires_at:
                del self._entries[user_id]
                return None
            return context

    def set(self, user_id: str, context: UserContext) -> None:
        with self._lock:
            self._entries[user_id] = (self._clock() + self.ttl_seconds, context)

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class UserContextBuilder:
    """
    Aggregates rating history and stored preferences into a UserContext.

    Genre data for every rated item comes from one batched metadata lookup.
    """

    def __init__(self, session_factory, metadata_provider, cache: Optional[UserContextCache] = None):
        """
        Args:
            session_factory: Callable returning a new SQLAlchemy session
            metadata_provider: Object with batch_metadata(items) -> list aligned to items
            cache: Optional context cache
        """
        self.session_factory = session_factory
        self.metadata_provider = metadata_provider
        self.cache = cache

    def build(self, user_id: str, deadline: Optional[Deadline] = None) -> UserContext:
        """
        Build the context for a user.

        Args:
            user_id: User ID
            deadline: Request deadline for metadata fetches

        Returns:
            UserContext (defaults when the user has no history)
        """
        if self.cache is not None:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        db = self.session_factory()
        try:
            repo = RatingRepository(db)
            ratings = [
                (MediaRef(r.tmdb_id, r.media_type, r.title, r.poster_path), r.rating)
                for r in repo.get_user_ratings(user_id)
            ]
            preferred_genres = repo.get_preferred_genres(user_id)
        finally:
            db.close()

        genres_by_item = self._load_genres([ref for ref, _ in ratings], deadline)

        genre_weights: Dict[str, float] = defaultdict(float)
        for (ref, rating), genres in zip(ratings, genres_by_item):
            for genre in genres:
                genre_weights[genre] += rating / 10

        favorite_genres = [
            genre for genre, _ in sorted(genre_weights.items(), key=lambda kv: kv[1], reverse=True)
        ][:FAVORITE_GENRE_COUNT]
        if not favorite_genres:
            favorite_genres = preferred_genres[:FAVORITE_GENRE_COUNT]

        recent_genres = set()
        for genres in genres_by_item[-RECENT_RATING_COUNT:]:
            recent_genres.update(genres)

        average_rating = (
            sum(rating for _, rating in ratings) / len(ratings) if ratings else DEFAULT_AVERAGE_RATING
        )

        context = UserContext(
            user_id=user_id,
            favorite_genres=favorite_genres,
            recent_genres=recent_genres,
            average_rating=average_rating,
            total_ratings=len(ratings),
            preferred_genres=preferred_genres,
        )

        # Genres may be missing once the deadline passed
        if self.cache is not None and not (deadline is not None and deadline.expired()):
            self.cache.set(user_id, context)

        logger.info(
            f"User context for {user_id}: {len(ratings)} ratings, favorite genres {favorite_genres}"
        )
        return context

    def _load_genres(self, refs: List[MediaRef], deadline: Optional[Deadline]) -> List[List[str]]:
        if not refs:
            return []
        try:
            metadata = self.metadata_provider.batch_metadata(refs, deadline=deadline)
        except Exception as e:
            logger.warning(f"Genre lookup failed, building context without genres: {e}")
            return [[] for _ in refs]
        return [list(m.genres) if m is not None else [] for m in metadata]
