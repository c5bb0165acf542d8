"""Client for the TMDB discovery and details endpoints"""
from typing import Dict, Optional
import logging
import requests

from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cinepick_recommendation_service.config import get_tmdb_api_key, get_tmdb_base_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class TmdbClient:
    """Client for the TMDB content provider."""

    def __init__(
            self,
            api_key: Optional[str] = None,
            base_url: Optional[str] = None
    ):
        self.api_key = api_key or get_tmdb_api_key()
        self.base_url = (base_url or get_tmdb_base_url() or "").rstrip("/")

        # Configure session with retries
        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        # noinspection HttpUrlsUsage
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({"Accept": "application/json"})
        if self.api_key:
            self.session.headers.update({"Authorization": f"Bearer {self.api_key}"})

    def _get(self, path: str, params: Optional[Dict] = None, timeout: Optional[float] = None) -> Dict:
        if timeout is None:
            timeout = DEFAULT_TIMEOUT
        elif timeout <= 0:
            raise requests.Timeout(f"No time left to request {path}")

        url = f"{self.base_url}{path}"
        response = self.session.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        return response.json()

    # ===== DISCOVERY ENDPOINTS =====

    def discover_movies(
            self,
            genre_id: int,
            page: int = 1,
            min_vote_count: int = 100,
            timeout: Optional[float] = None
    ) -> Dict:
        """
        Fetch one page of movies in a genre, most popular first.

        Returns:
            {
                "page": 1,
                "results": [...],
                "total_pages": 500
            }
        """
        params = {
            "with_genres": genre_id,
            "page": page,
            "sort_by": "popularity.desc",
            "vote_count.gte": min_vote_count,
        }
        return self._get("/discover/movie", params=params, timeout=timeout)

    def get_trending(self, page: int = 1, timeout: Optional[float] = None) -> Dict:
        """Fetch one page of this week's trending movies, shows and people"""
        return self._get("/trending/all/week", params={"page": page}, timeout=timeout)

    def get_top_rated_movies(self, page: int = 1, timeout: Optional[float] = None) -> Dict:
        """Fetch one page of the top rated movies"""
        return self._get("/movie/top_rated", params={"page": page}, timeout=timeout)

    # ===== DETAILS ENDPOINTS =====

    def get_details(self, tmdb_id: int, media_type: str, timeout: Optional[float] = None) -> Dict:
        """
        Fetch full details for a movie or TV show.

        Args:
            tmdb_id: TMDB ID
            media_type: "movie" or "tv"
            timeout: Request timeout in seconds

        Returns:
            TMDB details JSON
        """
        if media_type not in ("movie", "tv"):
            raise ValueError(f"Unsupported media_type: {media_type}")
        return self._get(f"/{media_type}/{tmdb_id}", timeout=timeout)
