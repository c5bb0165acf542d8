"""
Run the recommendation pipeline for one user and write the result as JSON.

Usage:
    # Print recommendations to stdout
    python scripts/generate_recommendations.py user-123

    # Custom sizes, deadline and output file
    python scripts/generate_recommendations.py user-123 --limit 20 --deadline 5 --output recs.json
"""

import sys
from pathlib import Path

# Add parent directory to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import argparse
import json
import logging

from cinepick_recommendation_service.exceptions import InvalidUserIdError
from cinepick_recommendation_service.services import create_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate recommendations for a user with the multi-stage pipeline"
    )
    parser.add_argument("user_id", type=str, help="User to generate recommendations for")
    parser.add_argument(
        "--limit", type=int, default=50, help="Number of recommendations (default: 50)"
    )
    parser.add_argument(
        "--candidate-count", type=int, default=2000, help="Candidate pool size (default: 2000)"
    )
    parser.add_argument(
        "--ranking-limit", type=int, default=200, help="Items kept after ranking (default: 200)"
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Time budget in seconds (default: from config)",
    )
    parser.add_argument(
        "--output", type=str, default=None, help="Write JSON to this file instead of stdout"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main execution function."""
    args = parse_args(argv)

    logger.info("=" * 70)
    logger.info(f"GENERATING RECOMMENDATIONS FOR {args.user_id}")
    logger.info("=" * 70)

    pipeline = create_pipeline()

    try:
        recommendations = pipeline.get_recommendations(
            user_id=args.user_id,
            candidate_count=args.candidate_count,
            ranking_limit=args.ranking_limit,
            final_limit=args.limit,
            deadline_seconds=args.deadline,
        )
    except InvalidUserIdError as e:
        logger.error(f"✗ {e}")
        return 2

    payload = json.dumps(
        {
            "user_id": args.user_id,
            "count": len(recommendations),
            "recommendations": [rec.to_dict() for rec in recommendations],
        },
        indent=2,
    )

    if args.output:
        Path(args.output).write_text(payload)
        logger.info(f"✓ Wrote {len(recommendations)} recommendations to {args.output}")
    else:
        print(payload)

    for i, rec in enumerate(recommendations[:5], 1):
        logger.info(f"  {i}. {rec.title} (score: {rec.score:.3f}, {', '.join(rec.reasons)})")

    return 0


if __name__ == "__main__":
    sys.exit(main())
