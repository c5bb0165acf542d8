"""Repository for diversity metrics history."""

import logging
from typing import Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from cinepick_recommendation_service.models import DiversityMetricRecord

logger = logging.getLogger(__name__)

METRIC_FIELDS = (
    "intra_diversity",
    "genre_balance",
    "serendipity_score",
    "exploration_rate",
    "coverage_score",
)


class DiversityMetricsRepository:
    """
    Repository for storing and reading diversity metrics.
    """

    def __init__(self, db: Session):
        self.db = db

    def store_metrics(
            self,
            user_id: str,
            recommendation_type: str,
            metrics: Dict[str, float],
            diversity_config: Optional[Dict] = None,
            recommendation_count: Optional[int] = None,
            session_id: Optional[str] = None
    ) -> DiversityMetricRecord:
        """
        Store one metrics row.

        Args:
            user_id: User the list was served to
            recommendation_type: Which recommender produced the list
            metrics: Dict with the five metric values
            diversity_config: JSON snapshot of the diversity config used
            recommendation_count: Number of items in the list
            session_id: Optional client session id

        Returns:
            DiversityMetricRecord object
        """
        record = DiversityMetricRecord(
            user_id=user_id,
            session_id=session_id,
            recommendation_type=recommendation_type,
            intra_diversity=metrics.get("intra_diversity"),
            genre_balance=metrics.get("genre_balance"),
            serendipity_score=metrics.get("serendipity_score"),
            exploration_rate=metrics.get("exploration_rate"),
            coverage_score=metrics.get("coverage_score"),
            diversity_config=diversity_config,
            recommendation_count=recommendation_count,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)

        return record

    # noinspection PyTypeChecker
    def get_user_metrics(
            self,
            user_id: str,
            limit: int = 20,
            recommendation_type: Optional[str] = None
    ) -> List[DiversityMetricRecord]:
        """
        Get the most recent metrics rows for a user.

        Args:
            user_id: User ID
            limit: Maximum rows
            recommendation_type: Optional filter

        Returns:
            List of DiversityMetricRecord objects, newest first
        """
        query = self.db.query(DiversityMetricRecord).filter(DiversityMetricRecord.user_id == user_id)

        if recommendation_type is not None:
            query = query.filter(DiversityMetricRecord.recommendation_type == recommendation_type)

        return (
            query
            .order_by(desc(DiversityMetricRecord.created_at), desc(DiversityMetricRecord.id))
            .limit(limit)
            .all()
        )

    def get_user_summary(self, user_id: str) -> Dict:
        """Get averages of every metric over a user's history."""
        row = (
            self.db.query(
                func.count(DiversityMetricRecord.id),
                *[func.avg(getattr(DiversityMetricRecord, name)) for name in METRIC_FIELDS]
            )
            .filter(DiversityMetricRecord.user_id == user_id)
            .one()
        )

        total = row[0] or 0
        averages = {
            name: float(value) if value is not None else 0.0
            for name, value in zip(METRIC_FIELDS, row[1:])
        }

        return {
            "total_records": total,
            "averages": averages,
        }
