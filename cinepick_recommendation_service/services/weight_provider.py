"""Adaptive ensemble weights"""
from typing import Optional
import logging
import requests

from cinepick_recommendation_service.config import get_weight_service_url
from cinepick_recommendation_service.pipeline.types import DEFAULT_WEIGHTS, AdaptiveWeights

logger = logging.getLogger(__name__)


class StaticWeightProvider:
    """Returns the same weights for every user."""

    def __init__(self, weights: AdaptiveWeights = DEFAULT_WEIGHTS):
        self.weights = weights

    def get_adaptive_weights(self, user_id: str, timeout: Optional[float] = None) -> AdaptiveWeights:
        return self.weights


class HttpWeightProvider:
    """Fetches per-user weights from the weight learning service."""

    def __init__(self, service_url: Optional[str] = None, timeout: float = 5):
        self.service_url = (service_url or get_weight_service_url() or "").rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def get_adaptive_weights(self, user_id: str, timeout: Optional[float] = None) -> AdaptiveWeights:
        """
        Get weights for a user.

        Args:
            user_id: User ID
            timeout: Request timeout in seconds (None uses the provider default)

        Returns:
            AdaptiveWeights; missing fields use the defaults

        Raises:
            requests.RequestException: Service unreachable, returned an error, or no time was left
        """
        if timeout is None:
            timeout = self.timeout
        elif timeout <= 0:
            raise requests.Timeout("No time left to request adaptive weights")

        url = f"{self.service_url}/weights/{user_id}"
        response = self.session.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()

        return AdaptiveWeights(
            genre_match=float(data.get("genreMatch", DEFAULT_WEIGHTS.genre_match)),
            rating_quality=float(data.get("ratingQuality", DEFAULT_WEIGHTS.rating_quality)),
        )


def create_weight_provider():
    """HTTP provider when a weight service is configured, else static defaults."""
    if get_weight_service_url():
        return HttpWeightProvider()
    return StaticWeightProvider()
