"""Client for the ML scoring service"""
from typing import Optional
import logging
import requests

from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cinepick_recommendation_service.config import get_service_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ScoringServiceClient:
    """Asks the external ML model how much a user will like an item."""

    def __init__(self, service_url: Optional[str] = None, pool_size: int = 16):
        self.service_url = (service_url or get_service_url('scoring', 7074) or "").rstrip("/")

        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=None,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=pool_size)
        # noinspection HttpUrlsUsage
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def predict_score(
            self,
            user_id: str,
            tmdb_id: int,
            media_type: str,
            timeout: Optional[float] = None
    ) -> float:
        """
        Predict a user's affinity for an item.

        Args:
            user_id: User ID
            tmdb_id: TMDB ID
            media_type: "movie" or "tv"
            timeout: Request timeout in seconds

        Returns:
            Score in [0, 1]

        Raises:
            requests.HTTPError: Service returned an error status
            requests.Timeout: timeout is zero or negative
            ValueError: Response has no numeric score
        """
        if timeout is None:
            timeout = DEFAULT_TIMEOUT
        elif timeout <= 0:
            raise requests.Timeout("No time left to request a score")

        url = f"{self.service_url}/predict"
        payload = {"userId": user_id, "tmdbId": tmdb_id, "mediaType": media_type}
        response = self.session.post(url, json=payload, timeout=timeout)
        response.raise_for_status()

        score = response.json().get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError(f"Scoring service returned non-numeric score: {score!r}")

        return min(1.0, max(0.0, float(score)))
