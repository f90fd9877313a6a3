"""
Track Favorites Routes

This module handles user favorite track operations:
- GET /api/favorites - List user's favorited tracks (requires auth)
- POST /api/favorites/<track_id> - Add track to favorites (requires auth)
- DELETE /api/favorites/<track_id> - Remove track from favorites (requires auth)

Changing favorites drops the user's cached recommendations and tells
connected listeners about the like/unlike.
"""

from flask import Blueprint, jsonify, g
import logging

import music_db
from auth_utils import display_name
from errors import ApiError
from middleware.auth_middleware import require_auth
from recommender import engine
from routes.realtime import hub

logger = logging.getLogger(__name__)
favorites_bp = Blueprint('favorites', __name__)


# =============================================================================
# USER'S FAVORITES
# =============================================================================

@favorites_bp.route('/api/favorites', methods=['GET'])
@require_auth
def get_user_favorites():
    """
    Get all favorite tracks for the authenticated user

    Returns:
        200: {"success": true, "data": [{...track columns..., "favorited_at": "..."}, ...]}
        500: Server error
    """
    favorites = music_db.list_favorites(g.current_user['id'])
    return jsonify({'success': True, 'data': favorites}), 200


# =============================================================================
# FAVORITE/UNFAVORITE TRACK
# =============================================================================

@favorites_bp.route('/api/favorites/<track_id>', methods=['POST'])
@require_auth
def add_favorite(track_id):
    """
    Add a track to user's favorites

    Returns:
        201: {"success": true, "message": "Track added to favorites", "favorite_count": N}
        404: Track not found
        409: Already favorited
        500: Server error
    """
    user = g.current_user

    try:
        if not music_db.get_track(track_id):
            return jsonify({'success': False, 'message': 'Track not found'}), 404

        music_db.add_favorite(user['id'], track_id)
        count = music_db.count_favorites(track_id)

    except ApiError as e:
        if e.status_code == 409:
            return jsonify({'success': False, 'message': 'Track already favorited'}), 409
        logger.error(f"Error adding favorite: {e}", exc_info=True)
        return jsonify({'success': False, 'message': 'Failed to add favorite'}), 500

    engine.invalidate_user(user['id'])
    hub.on_track_like(user['id'], display_name(user), track_id)

    return jsonify({
        'success': True,
        'message': 'Track added to favorites',
        'favorite_count': count
    }), 201


@favorites_bp.route('/api/favorites/<track_id>', methods=['DELETE'])
@require_auth
def remove_favorite(track_id):
    """
    Remove a track from user's favorites

    Returns:
        200: {"success": true, "message": "Track removed from favorites", "favorite_count": N}
        404: Track not in favorites
        500: Server error
    """
    user = g.current_user

    try:
        if not music_db.remove_favorite(user['id'], track_id):
            return jsonify({'success': False, 'message': 'Track not in favorites'}), 404

        count = music_db.count_favorites(track_id)

    except ApiError as e:
        logger.error(f"Error removing favorite: {e}", exc_info=True)
        return jsonify({'success': False, 'message': 'Failed to remove favorite'}), 500

    engine.invalidate_user(user['id'])
    hub.on_track_unlike(user['id'], display_name(user), track_id)

    return jsonify({
        'success': True,
        'message': 'Track removed from favorites',
        'favorite_count': count
    }), 200
