"""Repository for managing cached catalog metadata."""

import logging
from datetime import UTC, datetime
from typing import Dict, Iterable, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from cinepick_recommendation_service.models import MediaMetadata

logger = logging.getLogger(__name__)

MediaKey = Tuple[int, str]


class MetadataRepository:
    """
    Repository for managing cached movie/TV metadata.
    """

    def __init__(self, db: Session):
        self.db = db

    def store_media(self, media_data: dict) -> MediaMetadata:
        """
        Store or update metadata for one item.

        Args:
            media_data: Dict with keys tmdb_id, media_type, title and
                optionally genres, overview, poster_path, vote_average,
                release_date, runtime

        Returns:
            MediaMetadata object
        """
        tmdb_id = media_data["tmdb_id"]
        media_type = media_data["media_type"]

        existing = self.get_media(tmdb_id, media_type)

        if existing:
            existing.title = media_data["title"]  # type: ignore[assignment]
            existing.genres = media_data.get("genres")  # type: ignore[assignment]
            existing.overview = media_data.get("overview")  # type: ignore[assignment]
            existing.poster_path = media_data.get("poster_path")  # type: ignore[assignment]
            existing.vote_average = media_data.get("vote_average")  # type: ignore[assignment]
            existing.release_date = media_data.get("release_date")  # type: ignore[assignment]
            existing.runtime = media_data.get("runtime")  # type: ignore[assignment]
            existing.synced_at = datetime.now(UTC)  # type: ignore[assignment]
            media = existing
        else:
            media = MediaMetadata(
                tmdb_id=tmdb_id,
                media_type=media_type,
                title=media_data["title"],
                genres=media_data.get("genres"),
                overview=media_data.get("overview"),
                poster_path=media_data.get("poster_path"),
                vote_average=media_data.get("vote_average"),
                release_date=media_data.get("release_date"),
                runtime=media_data.get("runtime"),
                synced_at=datetime.now(UTC),
            )
            self.db.add(media)

        self.db.commit()
        self.db.refresh(media)

        return media

    def get_media(self, tmdb_id: int, media_type: str) -> MediaMetadata | None:
        """Get cached metadata for one item."""
        return (
            self.db.query(MediaMetadata)
            .filter(MediaMetadata.tmdb_id == tmdb_id, MediaMetadata.media_type == media_type)
            .first()
        )

    def get_batch(self, keys: Iterable[MediaKey]) -> Dict[MediaKey, MediaMetadata]:
        """
        Get cached metadata for many items in one query.

        Args:
            keys: (tmdb_id, media_type) pairs

        Returns:
            Dict keyed by (tmdb_id, media_type); misses are absent
        """
        unique_keys = list(dict.fromkeys(keys))
        if not unique_keys:
            return {}

        rows = (
            self.db.query(MediaMetadata)
            .filter(
                or_(*[
                    and_(MediaMetadata.tmdb_id == tmdb_id, MediaMetadata.media_type == media_type)
                    for tmdb_id, media_type in unique_keys
                ])
            )
            .all()
        )

        return {(row.tmdb_id, row.media_type): row for row in rows}

    def count_media(self) -> int:
        """Count total cached items."""
        return self.db.query(MediaMetadata).count()
