"""Shared test fixtures and configuration for pytest."""
import pytest
import json
from datetime import datetime, timedelta
from unittest.mock import Mock
from typing import Dict, List
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from cinepick_recommendation_service.models.base import Base
from cinepick_recommendation_service.models import (
    MediaMetadata,
    UserPreference,
    UserRating,
    UserWatchlistItem,
)
from cinepick_recommendation_service.pipeline.types import (
    Candidate,
    FeatureBreakdown,
    ItemMetadata,
    ScoredItem,
)


# ===== Database Fixtures =====

@pytest.fixture(scope="function")
def test_db_engine():
    """Create an in-memory SQLite database engine shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return sessionmaker(bind=test_db_engine)


@pytest.fixture(scope="function")
def test_db_session(session_factory):
    """Create a database session for testing."""
    session = session_factory()
    yield session
    session.close()


# ===== Sample Data Fixtures =====

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def add_rating(session: Session, user_id: str, tmdb_id: int, rating: int,
               media_type: str = "movie", minutes: int = 0) -> UserRating:
    """Insert one rating; `minutes` offsets created_at so ordering is deterministic."""
    record = UserRating(
        user_id=user_id,
        tmdb_id=tmdb_id,
        media_type=media_type,
        title=f"Title {tmdb_id}",
        poster_path=f"/poster{tmdb_id}.jpg",
        rating=rating,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )
    session.add(record)
    session.commit()
    return record


def add_metadata(session: Session, tmdb_id: int, genres: List[str],
                 media_type: str = "movie", vote_average: float = 7.5) -> MediaMetadata:
    """Insert one cached metadata row."""
    record = MediaMetadata(
        tmdb_id=tmdb_id,
        media_type=media_type,
        title=f"Title {tmdb_id}",
        genres=genres,
        overview=f"Overview {tmdb_id}",
        poster_path=f"/cached{tmdb_id}.jpg",
        vote_average=vote_average,
        release_date="2020-01-01",
        runtime=120,
    )
    session.add(record)
    session.commit()
    return record


@pytest.fixture
def sample_user_history(test_db_session) -> Dict:
    """A user with ratings, a watchlist entry, preferences and cached metadata."""
    add_metadata(test_db_session, 1, ["Action", "Thriller"])
    add_metadata(test_db_session, 2, ["Action", "Science Fiction"])
    add_metadata(test_db_session, 3, ["Comedy"])
    add_metadata(test_db_session, 4, ["Drama"], media_type="tv")

    add_rating(test_db_session, "alice", 1, 10, minutes=1)
    add_rating(test_db_session, "alice", 2, 8, minutes=2)
    add_rating(test_db_session, "alice", 3, 4, minutes=3)
    add_rating(test_db_session, "alice", 4, 6, media_type="tv", minutes=4)

    test_db_session.add(UserWatchlistItem(
        user_id="alice", tmdb_id=5, media_type="movie", title="Title 5"
    ))
    test_db_session.add(UserPreference(
        user_id="alice", preferred_genres=["Horror", "Western"], disliked_genres=["Romance"]
    ))
    test_db_session.commit()

    return {"user_id": "alice", "rated": [(1, "movie"), (2, "movie"), (3, "movie"), (4, "tv")],
            "watchlisted": [(5, "movie")]}


# ===== Pipeline Value Fixtures =====

def make_candidate(tmdb_id: int, source: str = "trending", base_score: float = 0.6,
                   media_type: str = "movie") -> Candidate:
    return Candidate(
        tmdb_id=tmdb_id,
        media_type=media_type,
        title=f"Title {tmdb_id}",
        poster_path=f"/poster{tmdb_id}.jpg",
        source=source,
        base_score=base_score,
    )


def make_scored(tmdb_id: int, score: float, source: str = "trending",
                ml_score: float = 0.5, media_type: str = "movie") -> ScoredItem:
    return ScoredItem(
        tmdb_id=tmdb_id,
        media_type=media_type,
        title=f"Title {tmdb_id}",
        poster_path=f"/poster{tmdb_id}.jpg",
        base_score=0.6,
        ensemble_score=score,
        features=FeatureBreakdown(
            ml_score=ml_score,
            collaborative_score=0.8 if source == "collaborative" else 0.0,
            genre_match=0.8 if source.startswith("genre:") else 0.3,
            quality_score=0.6,
            popularity_score=0.9 if source == "trending" else 0.5,
        ),
        source_tags=[source, "ml_score", "adaptive_weights"],
    )


@pytest.fixture
def sample_scored_items() -> List[ScoredItem]:
    """Forty ranked items spread over four sources, best first."""
    sources = ["genre:Action", "collaborative", "trending", "top_rated"]
    return [
        make_scored(100 + i, round(0.95 - i * 0.02, 4), source=sources[i % 4] if i >= 8 else sources[0])
        for i in range(40)
    ]


# ===== Mock Fixtures =====

def tmdb_page(ids: List[int], media_type: str = None) -> Dict:
    results = []
    for tmdb_id in ids:
        result = {"id": tmdb_id, "title": f"Movie {tmdb_id}", "poster_path": f"/p{tmdb_id}.jpg"}
        if media_type is not None:
            result["media_type"] = media_type
        results.append(result)
    return {"page": 1, "results": results}


@pytest.fixture
def mock_tmdb_client():
    """TMDB client returning small deterministic pages."""
    mock = Mock()
    mock.discover_movies.side_effect = (
        lambda genre_id, page, min_vote_count=100, timeout=None: tmdb_page(
            [genre_id * 1000 + page * 10 + i for i in range(3)]
        )
    )
    mock.get_trending.side_effect = lambda page, timeout=None: {
        "page": page,
        "results": [
            {"id": 500 + page, "media_type": "movie", "title": f"Trend {page}"},
            {"id": 600 + page, "media_type": "tv", "name": f"Show {page}"},
            {"id": 700 + page, "media_type": "person", "name": f"Person {page}"},
        ],
    }
    mock.get_top_rated_movies.side_effect = lambda page, timeout=None: tmdb_page([800 + page])
    mock.get_details.side_effect = lambda tmdb_id, media_type, timeout=None: {
        "id": tmdb_id,
        "title": f"Details {tmdb_id}",
        "genres": [{"id": 18, "name": "Drama"}],
        "overview": "Fetched overview",
        "poster_path": f"/fetched{tmdb_id}.jpg",
        "vote_average": 8.1,
        "release_date": "2021-05-05",
        "runtime": 99,
    }
    return mock


@pytest.fixture
def mock_metadata_provider():
    """Metadata provider that knows every item as a Drama."""
    mock = Mock()
    mock.batch_metadata.side_effect = lambda items, deadline=None: [
        ItemMetadata(genres=["Drama"], vote_average=7.0, release_date="2020-01-01",
                     overview="overview", runtime=100, poster_path=f"/meta{item.tmdb_id}.jpg")
        for item in items
    ]
    return mock




# ===== Configuration Fixtures =====

@pytest.fixture
def mock_config(monkeypatch):
    """Mock configuration values."""
    monkeypatch.setenv('DATABASE_URL', 'sqlite:///:memory:')
    monkeypatch.setenv('TMDB_API_KEY', 'test-token')
    monkeypatch.setenv('TMDB_BASE_URL', 'https://tmdb.test/3')
    monkeypatch.setenv('SCORING_SERVICE_URL', 'http://localhost:7074/api')


@pytest.fixture
def mock_local_settings(tmp_path):
    """Write a local.settings.json file."""
    settings = {
        "Values": {
            "DATABASE_URL": "sqlite:///:memory:",
            "SCORING_MAX_WORKERS": "4",
        }
    }

    settings_file = tmp_path / "local.settings.json"
    with open(settings_file, 'w') as f:
        json.dump(settings, f)

    yield settings_file



# ===== Factory Fixtures =====

@pytest.fixture
def candidate_factory():
    """Build Candidate objects."""
    return make_candidate


@pytest.fixture
def scored_item_factory():
    """Build ScoredItem objects."""
    return make_scored


@pytest.fixture
def rating_factory(test_db_session):
    """Insert UserRating rows into the test database."""
    return lambda *args, **kwargs: add_rating(test_db_session, *args, **kwargs)


@pytest.fixture
def metadata_factory(test_db_session):
    """Insert MediaMetadata rows into the test database."""
    return lambda *args, **kwargs: add_metadata(test_db_session, *args, **kwargs)
