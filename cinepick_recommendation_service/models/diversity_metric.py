"""Diversity metrics recorded for each served recommendation list."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Float, Index, Integer, String
from sqlalchemy.dialects.mysql import JSON

from cinepick_recommendation_service.models.base import Base


class DiversityMetricRecord(Base):
    """Diversity metrics for one served recommendation list.

    Written for monitoring only; nothing in the request path reads it back.
    """

    __tablename__ = "diversity_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    session_id = Column(String(64), nullable=True)
    recommendation_type = Column(String(50), nullable=False)

    intra_diversity = Column(Float, nullable=True)
    genre_balance = Column(Float, nullable=True)  # Shannon entropy
    serendipity_score = Column(Float, nullable=True)
    exploration_rate = Column(Float, nullable=True)
    coverage_score = Column(Float, nullable=True)

    diversity_config = Column(JSON, nullable=True)
    recommendation_count = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        Index("idx_diversity_metrics_user_id", "user_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<DiversityMetricRecord(user_id='{self.user_id}', type='{self.recommendation_type}', "
            f"intra_diversity={self.intra_diversity})>"
        )
