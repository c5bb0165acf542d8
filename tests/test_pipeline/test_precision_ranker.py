"""Tests for cinepick_recommendation_service.pipeline.precision_ranker."""

import threading
from unittest.mock import Mock

import pytest

from cinepick_recommendation_service.pipeline.deadline import Deadline
from cinepick_recommendation_service.pipeline.precision_ranker import (
    PrecisionRanker,
    candidate_features,
    ensemble_score,
)
from cinepick_recommendation_service.pipeline.types import (
    DEFAULT_WEIGHTS,
    AdaptiveWeights,
    FeatureBreakdown,
)


@pytest.fixture
def scoring_client():
    client = Mock()
    client.predict_score.return_value = 0.5
    return client


@pytest.fixture
def weight_provider():
    provider = Mock()
    provider.get_adaptive_weights.return_value = DEFAULT_WEIGHTS
    return provider


@pytest.fixture
def ranker(scoring_client, weight_provider, session_factory):
    precision_ranker = PrecisionRanker(scoring_client, weight_provider, session_factory, max_workers=4)
    yield precision_ranker
    precision_ranker.shutdown()


class TestEnsembleScore:
    """Tests for ensemble_score."""

    def test_weighted_combination(self):
        # Arrange
        features = FeatureBreakdown(
            ml_score=1.0, collaborative_score=0.0, genre_match=0.8, quality_score=0.8, popularity_score=0.5
        )

        # Act
        score = ensemble_score(features, DEFAULT_WEIGHTS)

        # Assert
        # 0.5 + 0.8*0.30*0.25 + 0 + 0.8*0.25*0.10
        assert score == pytest.approx(0.58)

    def test_collaborative_signal(self):
        features = FeatureBreakdown(
            ml_score=0.0, collaborative_score=0.8, genre_match=0.0, quality_score=0.0, popularity_score=0.5
        )

        assert ensemble_score(features, DEFAULT_WEIGHTS) == pytest.approx(0.12)

    def test_adaptive_weights_scale_signals(self):
        features = FeatureBreakdown(
            ml_score=0.0, collaborative_score=0.0, genre_match=1.0, quality_score=1.0, popularity_score=0.5
        )

        score = ensemble_score(features, AdaptiveWeights(genre_match=1.0, rating_quality=1.0))

        assert score == pytest.approx(0.35)

    def test_clamped(self):
        features = FeatureBreakdown(
            ml_score=5.0, collaborative_score=5.0, genre_match=5.0, quality_score=5.0, popularity_score=0.5
        )

        assert ensemble_score(features, DEFAULT_WEIGHTS) == 1.0


class TestCandidateFeatures:
    """Tests for candidate_features."""

    def test_genre_candidate(self, candidate_factory):
        features = candidate_features(candidate_factory(1, source="genre:Drama", base_score=0.8), 0.9)

        assert features.ml_score == 0.9
        assert features.genre_match == 0.8
        assert features.collaborative_score == 0.0
        assert features.quality_score == 0.8
        assert features.popularity_score == 0.5

    def test_collaborative_candidate(self, candidate_factory):
        features = candidate_features(candidate_factory(1, source="collaborative", base_score=0.7), 0.5)

        assert features.collaborative_score == 0.8
        assert features.genre_match == 0.3

    def test_trending_candidate(self, candidate_factory):
        features = candidate_features(candidate_factory(1, source="trending"), 0.5)

        assert features.popularity_score == 0.9


class TestRank:
    """Tests for PrecisionRanker.rank."""

    def test_filters_rated_and_watchlisted(self, ranker, candidate_factory, sample_user_history):
        # Arrange
        candidates = [
            candidate_factory(1),
            candidate_factory(4, media_type="tv"),
            candidate_factory(4, media_type="movie"),
            candidate_factory(5),
            candidate_factory(6),
        ]

        # Act
        ranked = ranker.rank(candidates, "alice")

        # Assert
        assert {item.key for item in ranked} == {(4, "movie"), (6, "movie")}

    def test_sorted_by_ensemble_score(self, ranker, scoring_client, candidate_factory):
        # Arrange
        scores = {1: 0.2, 2: 0.9, 3: 0.5}
        scoring_client.predict_score.side_effect = lambda user_id, tmdb_id, media_type, timeout=None: scores[tmdb_id]
        candidates = [candidate_factory(i) for i in (1, 2, 3)]

        # Act
        ranked = ranker.rank(candidates, "alice")

        # Assert
        assert [item.tmdb_id for item in ranked] == [2, 3, 1]
        scores_out = [item.ensemble_score for item in ranked]
        assert scores_out == sorted(scores_out, reverse=True)

    def test_limit(self, ranker, candidate_factory):
        ranked = ranker.rank([candidate_factory(i) for i in range(20)], "alice", limit=5)

        assert len(ranked) == 5

    def test_source_tags(self, ranker, candidate_factory):
        ranked = ranker.rank([candidate_factory(1, source="top_rated")], "alice")

        assert ranked[0].source_tags == ["top_rated", "ml_score", "adaptive_weights"]
        assert ranked[0].primary_source == "top_rated"

    def test_scoring_failure_uses_base_score(self, ranker, scoring_client, candidate_factory):
        """Test every scoring call failing still gives a ranked list."""
        # Arrange
        scoring_client.predict_score.side_effect = ConnectionError("scoring down")
        candidates = [
            candidate_factory(1, source="trending", base_score=0.6),
            candidate_factory(2, source="genre:Action", base_score=0.8),
            candidate_factory(3, source="collaborative", base_score=0.7),
        ]

        # Act
        ranked = ranker.rank(candidates, "alice")

        # Assert
        assert len(ranked) == 3
        for item in ranked:
            assert item.features.ml_score == item.base_score
        assert [item.tmdb_id for item in ranked] == [3, 2, 1]

    def test_scoring_timeout_uses_base_score(self, ranker, scoring_client, candidate_factory):
        # Arrange
        release = threading.Event()

        def slow(user_id, tmdb_id, media_type, timeout=None):
            if tmdb_id == 2:
                release.wait(5)
            return 0.9

        scoring_client.predict_score.side_effect = slow
        candidates = [candidate_factory(1, base_score=0.6), candidate_factory(2, base_score=0.6)]

        # Act
        ranked = ranker.rank(candidates, "alice", deadline=Deadline(0.3))
        release.set()

        # Assert
        ml_scores = {item.tmdb_id: item.features.ml_score for item in ranked}
        assert ml_scores == {1: 0.9, 2: 0.6}

    def test_weight_failure_uses_defaults(self, ranker, weight_provider, candidate_factory):
        # Arrange
        weight_provider.get_adaptive_weights.side_effect = RuntimeError("weights down")
        candidate = candidate_factory(1, source="genre:Action", base_score=0.8)

        # Act
        ranked = ranker.rank([candidate], "alice")

        # Assert
        expected = ensemble_score(candidate_features(candidate, 0.5), DEFAULT_WEIGHTS)
        assert ranked[0].ensemble_score == pytest.approx(expected)

    def test_expired_deadline_makes_no_remote_calls(self, ranker, scoring_client, weight_provider,
                                                    candidate_factory):
        """Test an exhausted deadline ranks on base scores and default weights without calling out."""
        # Arrange
        candidates = [candidate_factory(1, base_score=0.4), candidate_factory(2, base_score=0.7)]

        # Act
        ranked = ranker.rank(candidates, "alice", deadline=Deadline(0))

        # Assert
        assert [item.tmdb_id for item in ranked] == [2, 1]
        assert all(item.features.ml_score == item.base_score for item in ranked)
        scoring_client.predict_score.assert_not_called()
        weight_provider.get_adaptive_weights.assert_not_called()

    def test_weights_timeout_capped_by_deadline(self, ranker, weight_provider, candidate_factory):
        ranker.rank([candidate_factory(1)], "alice", deadline=Deadline(1))

        assert weight_provider.get_adaptive_weights.call_args.kwargs["timeout"] <= 1

    def test_ml_score_clamped(self, ranker, scoring_client, candidate_factory):
        scoring_client.predict_score.return_value = 3.0

        ranked = ranker.rank([candidate_factory(1)], "alice")

        assert ranked[0].features.ml_score == 1.0

    def test_empty_candidates(self, ranker):
        assert ranker.rank([], "alice") == []
