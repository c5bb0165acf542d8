"""Get personalized recommendations for a user."""
import azure.functions as func
import logging
import json

from cinepick_recommendation_service.exceptions import InvalidUserIdError
from cinepick_recommendation_service.services import create_pipeline

# Initialize blueprint
bp = func.Blueprint()

# Initialize pipeline (singleton pattern)
recommendation_pipeline = create_pipeline()

logger = logging.getLogger(__name__)

MAX_LIMIT = 100
MAX_CANDIDATE_COUNT = 5000
MAX_RANKING_LIMIT = 1000
MAX_METRICS_LIMIT = 100


def _error(message: str, status_code: int) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps({"error": message}),
        status_code=status_code,
        mimetype="application/json"
    )


def _int_param(req: func.HttpRequest, name: str, default: int, minimum: int, maximum: int) -> int:
    """Read a bounded integer query parameter; raises ValueError with a client-facing message."""
    raw = req.params.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer")
    if value < minimum or value > maximum:
        raise ValueError(f"{name} must be between {minimum} and {maximum}")
    return value


@bp.route(route="users/{user_id}/recommendations", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_user_recommendations(req: func.HttpRequest) -> func.HttpResponse:
    """
    Get recommendations for a user.

    Query Parameters:
        - limit: Number of recommendations (default: 50, max: 100)
        - candidate_count: Candidate pool size (default: 2000, max: 5000)
        - ranking_limit: Items kept after ranking (default: 200, max: 1000)
    """
    try:
        user_id = req.route_params.get('user_id')

        try:
            limit = _int_param(req, 'limit', 50, 1, MAX_LIMIT)
            candidate_count = _int_param(req, 'candidate_count', 2000, 1, MAX_CANDIDATE_COUNT)
            ranking_limit = _int_param(req, 'ranking_limit', 200, 1, MAX_RANKING_LIMIT)
        except ValueError as e:
            return _error(str(e), 400)

        recommendations = recommendation_pipeline.get_recommendations(
            user_id=user_id,
            candidate_count=candidate_count,
            ranking_limit=ranking_limit,
            final_limit=limit
        )

        response = {
            "user_id": user_id,
            "count": len(recommendations),
            "recommendations": [rec.to_dict() for rec in recommendations]
        }

        return func.HttpResponse(
            json.dumps(response),
            status_code=200,
            mimetype="application/json"
        )

    except InvalidUserIdError as e:
        return _error(str(e), 400)

    except Exception as e:
        logger.error(f"Error getting recommendations: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


@bp.route(route="users/{user_id}/diversity-metrics", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def get_user_diversity_metrics(req: func.HttpRequest) -> func.HttpResponse:
    """
    Get the diversity metrics recorded for a user's recommendations.

    Query Parameters:
        - limit: Number of history rows (default: 20, max: 100)
        - recommendation_type: Only rows from this recommender
    """
    try:
        user_id = req.route_params.get('user_id')

        try:
            limit = _int_param(req, 'limit', 20, 1, MAX_METRICS_LIMIT)
        except ValueError as e:
            return _error(str(e), 400)

        metrics = recommendation_pipeline.get_diversity_metrics(
            user_id=user_id,
            limit=limit,
            recommendation_type=req.params.get('recommendation_type')
        )

        return func.HttpResponse(
            json.dumps(metrics, default=str),  # default=str handles datetime
            status_code=200,
            mimetype="application/json"
        )

    except InvalidUserIdError as e:
        return _error(str(e), 400)

    except Exception as e:
        logger.error(f"Error getting diversity metrics: {str(e)}", exc_info=True)
        return _error("Internal server error", 500)


# noinspection PyUnusedLocal
@bp.route(route="recommendations/health", methods=["GET"])
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint."""
    return func.HttpResponse(
        json.dumps({
            "status": "healthy",
            "service": "cinepick-recommendation-service",
            "version": "1.0.0"
        }),
        status_code=200,
        mimetype="application/json"
    )
