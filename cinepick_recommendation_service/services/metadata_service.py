"""Batch catalog metadata lookups backed by the media_metadata cache."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from cinepick_recommendation_service.config import get_fetch_max_workers
from cinepick_recommendation_service.pipeline.deadline import Deadline, call_before_deadline, gather
from cinepick_recommendation_service.pipeline.types import ItemMetadata, MediaRef
from cinepick_recommendation_service.repos import MetadataRepository

logger = logging.getLogger(__name__)

MediaKey = Tuple[int, str]

DETAILS_TIMEOUT = 10


def metadata_from_row(row) -> ItemMetadata:
    """Convert a cached MediaMetadata row."""
    return ItemMetadata(
        genres=list(row.genres or []),
        vote_average=float(row.vote_average or 0.0),
        release_date=row.release_date or "",
        overview=row.overview or "",
        runtime=row.runtime,
        poster_path=row.poster_path,
    )


def media_data_from_tmdb(ref: MediaRef, details: Dict) -> Dict:
    """
    Flatten a TMDB details payload into the cache's column layout.

    Movies and TV shows name their title, date and runtime fields differently.
    """
    runtime = details.get("runtime")
    if runtime is None:
        episode_runtimes = details.get("episode_run_time") or []
        runtime = episode_runtimes[0] if episode_runtimes else None

    return {
        "tmdb_id": ref.tmdb_id,
        "media_type": ref.media_type,
        "title": details.get("title") or details.get("name") or ref.title or "",
        "genres": [genre["name"] for genre in details.get("genres", []) if genre.get("name")],
        "overview": details.get("overview") or "",
        "poster_path": details.get("poster_path") or ref.poster_path,
        "vote_average": details.get("vote_average"),
        "release_date": details.get("release_date") or details.get("first_air_date") or "",
        "runtime": runtime,
    }


class MetadataService:
    """
    Looks up metadata for many items at once.

    One cache query covers the whole batch; misses are fetched concurrently
    from TMDB (when a client is configured) and written back to the cache.
    """

    def __init__(self, session_factory, tmdb_client=None, max_workers: Optional[int] = None):
        self.session_factory = session_factory
        self.tmdb_client = tmdb_client
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers or get_fetch_max_workers(),
            thread_name_prefix="metadata",
        )

    def batch_metadata(
            self,
            items: Sequence[MediaRef],
            deadline: Optional[Deadline] = None
    ) -> List[Optional[ItemMetadata]]:
        """
        Get metadata for a batch of items.

        Args:
            items: Items to look up
            deadline: Request deadline for TMDB fetches

        Returns:
            List aligned with items; None where metadata is unavailable
        """
        if not items:
            return []

        deadline = deadline or Deadline.none()
        keys = [item.key for item in items]

        db = self.session_factory()
        try:
            repo = MetadataRepository(db)
            found: Dict[MediaKey, ItemMetadata] = {
                key: metadata_from_row(row) for key, row in repo.get_batch(keys).items()
            }
        finally:
            db.close()

        misses = [ref for ref in dict((item.key, item) for item in items).values() if ref.key not in found]

        if misses and self.tmdb_client is not None:
            found.update(self._fetch_missing(misses, deadline))

        logger.info(f"Metadata: {len(found)}/{len(set(keys))} items resolved ({len(misses)} cache misses)")
        return [found.get(key) for key in keys]

    def _fetch_missing(self, refs: List[MediaRef], deadline: Deadline) -> Dict[MediaKey, ItemMetadata]:
        futures = [
            self.executor.submit(
                call_before_deadline, deadline, DETAILS_TIMEOUT,
                self.tmdb_client.get_details, ref.tmdb_id, ref.media_type
            )
            for ref in refs
        ]
        results = gather(futures, deadline, "metadata fetches")

        fetched: Dict[MediaKey, ItemMetadata] = {}
        to_store: List[Dict] = []
        for ref, details in zip(refs, results):
            if details is None:
                continue
            media_data = media_data_from_tmdb(ref, details)
            to_store.append(media_data)
            fetched[ref.key] = ItemMetadata(
                genres=media_data["genres"],
                vote_average=float(media_data["vote_average"] or 0.0),
                release_date=media_data["release_date"],
                overview=media_data["overview"],
                runtime=media_data["runtime"],
                poster_path=media_data["poster_path"],
            )

        if to_store:
            self._store(to_store)

        return fetched

    def _store(self, media: List[Dict]) -> None:
        db = self.session_factory()
        try:
            repo = MetadataRepository(db)
            for media_data in media:
                repo.store_media(media_data)
            logger.info(f"✓ Cached metadata for {len(media)} items")
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to cache fetched metadata: {e}")
        finally:
            db.close()

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)
