# routes/recommendations.py
"""
Recommendation Routes

- GET /api/recommendations - Personalized recommendations (requires auth)
- GET /api/recommendations/similar/<track_id> - Tracks similar to a track (requires auth)
"""

from flask import Blueprint, jsonify, request, g
import logging

from middleware.auth_middleware import require_auth
from recommender import engine
from utils.helpers import parse_limit

logger = logging.getLogger(__name__)
recommendations_bp = Blueprint('recommendations', __name__)

MAX_LIMIT = 50


@recommendations_bp.route('/api/recommendations', methods=['GET'])
@require_auth
def get_recommendations():
    """
    Hybrid (collaborative + content-based) recommendations for the current user

    Query params:
        limit: 1-50, default 10

    Returns:
        200: {
            "success": true,
            "data": {
                "recommendations": [
                    {...track columns..., "score": 5,
                     "recommendation_type": "content-based",
                     "recommendation_reason": "Because you like Daft Punk"},
                    ...
                ],
                "algorithm": "hybrid"
            }
        }
        400: Invalid limit
        401: Missing or invalid token
        500: Favorites could not be loaded
    """
    limit = parse_limit(request.args.get('limit'), default=10, maximum=MAX_LIMIT)
    recommendations = engine.recommend(g.current_user['id'], limit)

    return jsonify({
        'success': True,
        'data': {
            'recommendations': recommendations,
            'algorithm': 'hybrid'
        }
    }), 200


@recommendations_bp.route('/api/recommendations/similar/<track_id>', methods=['GET'])
@require_auth
def get_similar_tracks(track_id):
    """
    Tracks sharing a genre or artist with the given track

    Query params:
        limit: 1-50, default 6

    Returns:
        200: {"success": true, "data": {"sourceTrack": {"id", "title"}, "similar": [...]}}
        404: Track not found
    """
    limit = parse_limit(request.args.get('limit'), default=6, maximum=MAX_LIMIT)
    source, similar = engine.similar_to(track_id, limit)

    return jsonify({
        'success': True,
        'data': {
            'sourceTrack': {'id': source['id'], 'title': source.get('title')},
            'similar': similar
        }
    }), 200
