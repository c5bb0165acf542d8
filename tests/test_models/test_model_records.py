"""Unit tests for the ORM models."""
import pytest
from sqlalchemy.exc import IntegrityError

from cinepick_recommendation_service.models import (
    DiversityMetricRecord,
    MediaMetadata,
    UserPreference,
    UserRating,
    UserWatchlistItem,
)


class TestUserRating:
    """Tests for UserRating model."""

    def test_user_rating_creation(self, test_db_session):
        """Test creating a UserRating record."""
        # Arrange & Act
        rating = UserRating(user_id='alice', tmdb_id=603, media_type='movie', title='The Matrix', rating=9)
        test_db_session.add(rating)
        test_db_session.commit()

        # Assert
        retrieved = test_db_session.query(UserRating).filter_by(user_id='alice').one()
        assert retrieved.id is not None
        assert retrieved.rating == 9
        assert retrieved.created_at is not None

    def test_user_rating_repr(self):
        """Test __repr__ method."""
        rating = UserRating(user_id='alice', tmdb_id=603, media_type='movie', rating=9)

        assert repr(rating) == "<UserRating(user_id='alice', tmdb_id=603, media_type='movie', rating=9)>"

    def test_user_rating_requires_title(self, test_db_session):
        """Test that title is mandatory."""
        test_db_session.add(UserRating(user_id='alice', tmdb_id=1, media_type='movie', rating=5))

        with pytest.raises(IntegrityError):
            test_db_session.commit()


class TestUserWatchlistItem:
    """Tests for UserWatchlistItem model."""

    def test_watchlist_item_creation(self, test_db_session):
        # Arrange & Act
        test_db_session.add(UserWatchlistItem(user_id='alice', tmdb_id=1438, media_type='tv', title='The Wire'))
        test_db_session.commit()

        # Assert
        retrieved = test_db_session.query(UserWatchlistItem).one()
        assert retrieved.media_type == 'tv'
        assert retrieved.added_at is not None
        assert 'tmdb_id=1438' in repr(retrieved)


class TestUserPreference:
    """Tests for UserPreference model."""

    def test_preference_json_round_trip(self, test_db_session):
        # Arrange & Act
        test_db_session.add(UserPreference(user_id='alice', preferred_genres=['Drama', 'Crime']))
        test_db_session.commit()

        # Assert
        retrieved = test_db_session.get(UserPreference, 'alice')
        assert retrieved.preferred_genres == ['Drama', 'Crime']
        assert retrieved.disliked_genres is None


class TestMediaMetadata:
    """Tests for MediaMetadata model."""

    def test_composite_key(self, test_db_session):
        """Test a movie and a show may share a TMDB id."""
        # Arrange & Act
        test_db_session.add(MediaMetadata(tmdb_id=1, media_type='movie', title='Movie', genres=['Action']))
        test_db_session.add(MediaMetadata(tmdb_id=1, media_type='tv', title='Show', genres=['Drama']))
        test_db_session.commit()

        # Assert
        assert test_db_session.get(MediaMetadata, (1, 'tv')).genres == ['Drama']
        assert test_db_session.query(MediaMetadata).count() == 2

    def test_synced_at_default(self, test_db_session):
        media = MediaMetadata(tmdb_id=2, media_type='movie', title='Movie')
        test_db_session.add(media)
        test_db_session.commit()

        assert media.synced_at is not None

    def test_repr(self):
        media = MediaMetadata(tmdb_id=2, media_type='movie', title='Heat')

        assert repr(media) == "<MediaMetadata(tmdb_id=2, media_type='movie', title='Heat')>"


class TestDiversityMetricRecord:
    """Tests for DiversityMetricRecord model."""

    def test_record_creation(self, test_db_session):
        # Arrange & Act
        record = DiversityMetricRecord(
            user_id='alice',
            recommendation_type='multi-stage-pipeline',
            intra_diversity=0.5,
            diversity_config={'lambda': 0.7},
        )
        test_db_session.add(record)
        test_db_session.commit()

        # Assert
        retrieved = test_db_session.query(DiversityMetricRecord).one()
        assert retrieved.diversity_config == {'lambda': 0.7}
        assert retrieved.session_id is None
        assert retrieved.created_at is not None
        assert "type='multi-stage-pipeline'" in repr(retrieved)
