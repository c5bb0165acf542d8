"""Cached catalog metadata for quick access"""
from sqlalchemy import Column, Integer, Float, DateTime, String, Text
from sqlalchemy.dialects.mysql import JSON
from datetime import datetime, UTC

from cinepick_recommendation_service.models.base import Base


class MediaMetadata(Base):
    """Cached movie/TV metadata for quick access.
    Mirrors data from the TMDB details endpoints.
    """
    __tablename__ = 'media_metadata'

    tmdb_id = Column(Integer, primary_key=True)
    media_type = Column(String(10), primary_key=True)
    title = Column(String(255), nullable=False)
    genres = Column(JSON, nullable=True)
    overview = Column(Text, nullable=True)
    poster_path = Column(String(255), nullable=True)
    vote_average = Column(Float, nullable=True)
    release_date = Column(String(20), nullable=True)
    runtime = Column(Integer, nullable=True)

    synced_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    def __repr__(self):
        return f"<MediaMetadata(tmdb_id={self.tmdb_id}, media_type='{self.media_type}', title='{self.title}')>"
