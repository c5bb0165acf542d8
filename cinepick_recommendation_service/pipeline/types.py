"""Value objects passed between the recommendation pipeline stages."""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set, Tuple

GENRE_SOURCE_PREFIX = "genre:"
COLLABORATIVE_SOURCE = "collaborative"
TRENDING_SOURCE = "trending"
TOP_RATED_SOURCE = "top_rated"


def clamp01(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return min(1.0, max(0.0, value))


@dataclass(frozen=True)
class MediaRef:
    """Minimal reference to a catalog item, used for batch metadata lookups."""

    tmdb_id: int
    media_type: str
    title: str = ""
    poster_path: Optional[str] = None

    @property
    def key(self) -> Tuple[int, str]:
        return self.tmdb_id, self.media_type


@dataclass
class ItemMetadata:
    """Catalog metadata for one item; every field has a safe default."""

    genres: List[str] = field(default_factory=list)
    vote_average: float = 0.0
    release_date: str = ""
    overview: str = ""
    runtime: Optional[int] = None
    poster_path: Optional[str] = None


@dataclass
class Candidate:
    """An item retrieved by one strategy, before ranking."""

    tmdb_id: int
    media_type: str
    title: str
    poster_path: Optional[str]
    source: str
    base_score: float

    @property
    def key(self) -> Tuple[int, str]:
        return self.tmdb_id, self.media_type

    def to_ref(self) -> MediaRef:
        return MediaRef(self.tmdb_id, self.media_type, self.title, self.poster_path)


@dataclass
class UserContext:
    """Compact per-request profile of a user's tastes."""

    user_id: str
    favorite_genres: List[str] = field(default_factory=list)
    recent_genres: Set[str] = field(default_factory=set)
    average_rating: float = 7.0
    total_ratings: int = 0
    preferred_genres: List[str] = field(default_factory=list)


@dataclass
class FeatureBreakdown:
    """Individual signals that make up an ensemble score."""

    ml_score: float
    collaborative_score: float
    genre_match: float
    quality_score: float
    popularity_score: float


@dataclass
class ScoredItem:
    """A candidate with its ensemble score."""

    tmdb_id: int
    media_type: str
    title: str
    poster_path: Optional[str]
    base_score: float
    ensemble_score: float
    features: FeatureBreakdown
    source_tags: List[str]

    @property
    def key(self) -> Tuple[int, str]:
        return self.tmdb_id, self.media_type

    @property
    def primary_source(self) -> str:
        return self.source_tags[0] if self.source_tags else "unknown"

    def to_ref(self) -> MediaRef:
        return MediaRef(self.tmdb_id, self.media_type, self.title, self.poster_path)


@dataclass
class FinalRecommendation:
    """A re-ranked, enriched recommendation ready to return to the caller."""

    tmdb_id: int
    media_type: str
    title: str
    poster_path: Optional[str]
    score: float
    ensemble_score: float
    diversity_score: float
    features: FeatureBreakdown
    source_tags: List[str]
    reasons: List[str]
    strategy: str
    metadata: ItemMetadata

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AdaptiveWeights:
    """Per-user multipliers for the genre and quality signals."""

    genre_match: float = 0.30
    rating_quality: float = 0.25


DEFAULT_WEIGHTS = AdaptiveWeights()
