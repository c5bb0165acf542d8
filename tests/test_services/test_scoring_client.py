"""Unit tests for ScoringServiceClient."""

import pytest
import requests

from cinepick_recommendation_service.services.scoring_client import ScoringServiceClient

SERVICE_URL = "http://scoring.test/api"


@pytest.fixture
def client():
    return ScoringServiceClient(service_url=SERVICE_URL)


class TestScoringServiceClient:
    """Tests for ScoringServiceClient.predict_score."""

    def test_default_url_from_config(self, monkeypatch):
        monkeypatch.setenv("SCORING_SERVICE_URL", "http://localhost:9999/api/")

        assert ScoringServiceClient().service_url == "http://localhost:9999/api"

    def test_predict_score(self, client, requests_mock):
        # Arrange
        requests_mock.post(f"{SERVICE_URL}/predict", json={"score": 0.82})

        # Act
        score = client.predict_score("alice", 603, "movie")

        # Assert
        assert score == pytest.approx(0.82)
        assert requests_mock.last_request.json() == {"userId": "alice", "tmdbId": 603, "mediaType": "movie"}

    @pytest.mark.parametrize("raw, expected", [(1.7, 1.0), (-0.3, 0.0), (1, 1.0)])
    def test_score_clamped(self, client, requests_mock, raw, expected):
        requests_mock.post(f"{SERVICE_URL}/predict", json={"score": raw})

        assert client.predict_score("alice", 603, "movie") == expected

    @pytest.mark.parametrize("payload", [{}, {"score": "high"}, {"score": None}, {"score": True}])
    def test_non_numeric_score_raises(self, client, requests_mock, payload):
        requests_mock.post(f"{SERVICE_URL}/predict", json=payload)

        with pytest.raises(ValueError):
            client.predict_score("alice", 603, "movie")

    def test_error_status_raises(self, client, requests_mock):
        requests_mock.post(f"{SERVICE_URL}/predict", status_code=400)

        with pytest.raises(requests.HTTPError):
            client.predict_score("alice", 603, "movie")

    def test_connection_error_raises(self, client, requests_mock):
        requests_mock.post(f"{SERVICE_URL}/predict", exc=requests.ConnectionError)

        with pytest.raises(requests.ConnectionError):
            client.predict_score("alice", 603, "movie")

    def test_timeout_passed_through(self, client, requests_mock):
        requests_mock.post(f"{SERVICE_URL}/predict", json={"score": 0.5})

        client.predict_score("alice", 603, "movie", timeout=1.5)

        assert requests_mock.last_request.timeout == 1.5

    def test_zero_timeout_makes_no_request(self, client, requests_mock):
        """Test an expired time budget is not widened to the default timeout."""
        # Arrange
        requests_mock.post(f"{SERVICE_URL}/predict", json={"score": 0.5})

        # Act & Assert
        with pytest.raises(requests.Timeout):
            client.predict_score("alice", 603, "movie", timeout=0.0)
        assert requests_mock.called is False
