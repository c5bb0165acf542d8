"""Similarity measures between items and between users."""
import numpy as np
import pandas as pd
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from sklearn.metrics.pairwise import cosine_similarity
import logging

logger = logging.getLogger(__name__)

RATING_COLUMNS = ['user_id', 'tmdb_id', 'media_type', 'rating']


def jaccard_similarity(genres_a: Iterable[str], genres_b: Iterable[str]) -> float:
    """
    Overlap of two genre sets.

    Args:
        genres_a: Genres of the first item
        genres_b: Genres of the second item

    Returns:
        |A & B| / |A | B|, or 0 when both are empty
    """
    a = set(genres_a)
    b = set(genres_b)
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def embedding_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two embedding vectors (0 for a zero vector)."""
    vec_a = np.asarray(a, dtype=float).reshape(1, -1)
    vec_b = np.asarray(b, dtype=float).reshape(1, -1)
    return float(cosine_similarity(vec_a, vec_b)[0, 0])


class SimilarityComputer:
    """Find users whose ratings resemble a target user's ratings."""

    def __init__(self, min_common_items: int = 2, max_similar_users: int = 10):
        """
        Initialize similarity computer.

        Args:
            min_common_items: Minimum co-rated items for a user to qualify
            max_similar_users: How many similar users to keep
        """
        self.min_common_items = min_common_items
        self.max_similar_users = max_similar_users

    @staticmethod
    def ratings_frame(rows: Iterable) -> pd.DataFrame:
        """
        Build a ratings DataFrame from ORM rows or dicts.

        Args:
            rows: Objects with user_id, tmdb_id, media_type, rating

        Returns:
            DataFrame with RATING_COLUMNS
        """
        records = []
        for row in rows:
            if isinstance(row, dict):
                records.append({col: row[col] for col in RATING_COLUMNS})
            else:
                records.append({col: getattr(row, col) for col in RATING_COLUMNS})
        return pd.DataFrame(records, columns=RATING_COLUMNS)

    def find_similar_users(
        self,
        user_ratings: Dict[Tuple[int, str], float],
        other_ratings: pd.DataFrame,
        limit: Optional[int] = None
    ) -> List[Tuple[str, float]]:
        """
        Rank other users by cosine similarity over co-rated items.

        Similarity is sum(r_u * r_v) / (|r_u| * |r_v|) with both magnitudes
        taken over the intersection. Zero magnitudes give 0.

        Args:
            user_ratings: Target user's ratings keyed by (tmdb_id, media_type)
            other_ratings: Other users' ratings, newest first (RATING_COLUMNS)
            limit: Maximum users to return (defaults to max_similar_users)

        Returns:
            List of (user_id, similarity), most similar first
        """
        limit = self.max_similar_users if limit is None else limit

        if not user_ratings or other_ratings.empty or limit <= 0:
            return []

        # Newest rating wins when a user rated the same item twice
        ratings = other_ratings.drop_duplicates(
            subset=['user_id', 'tmdb_id', 'media_type'], keep='first'
        )

        target = pd.Series(
            list(user_ratings.values()),
            index=pd.MultiIndex.from_tuples(list(user_ratings.keys()), names=['tmdb_id', 'media_type']),
            dtype=float,
        )

        item_index = pd.MultiIndex.from_frame(ratings[['tmdb_id', 'media_type']])
        common = ratings[item_index.isin(target.index)].copy()
        if common.empty:
            return []

        common_index = pd.MultiIndex.from_frame(common[['tmdb_id', 'media_type']])
        common['target_rating'] = target.reindex(common_index).to_numpy()
        common['rating'] = common['rating'].astype(float)
        common['product'] = common['rating'] * common['target_rating']
        common['other_sq'] = common['rating'] ** 2
        common['target_sq'] = common['target_rating'] ** 2

        grouped = common.groupby('user_id', sort=True).agg(
            dot=('product', 'sum'),
            other_sq=('other_sq', 'sum'),
            target_sq=('target_sq', 'sum'),
            common_count=('product', 'size'),
        )

        grouped = grouped[grouped['common_count'] >= self.min_common_items]
        if grouped.empty:
            return []

        magnitude = np.sqrt(grouped['other_sq']) * np.sqrt(grouped['target_sq'])
        similarity = (grouped['dot'] / magnitude).replace([np.inf, -np.inf], np.nan).fillna(0.0)

        top = similarity.sort_values(ascending=False, kind='mergesort').head(limit)

        logger.info(f"Found {len(top)} similar users from {len(grouped)} qualifying candidates")
        return [(str(user_id), float(score)) for user_id, score in top.items()]
