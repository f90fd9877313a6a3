# routes/realtime.py
"""
Socket.IO event handlers

Clients authenticate during the handshake with their Supabase access token
(auth={"token": ...}, or ?token=... for clients that cannot send auth data).
Sockets without a valid token are refused before anything is registered.

Client -> server events:
    track:playing {trackId, title, artist}    track:paused
    track:like {trackId}                      track:unlike {trackId}
    playlist:join {playlistId}                playlist:leave {playlistId}
    playlist:track-added {playlistId, track}  playlist:track-removed {playlistId, trackId}

Server -> client events:
    users:online, user:online, user:offline, user:listening, user:paused,
    track:liked, track:unliked, playlist:users, playlist:user-joined,
    playlist:user-left, playlist:track-added, playlist:track-removed
"""

from flask import Blueprint, jsonify, request
from flask_socketio import SocketIO
import logging

from auth_utils import display_name, verify_token
from middleware.auth_middleware import require_auth
from presence import PresenceHub, SocketIOEmitter

logger = logging.getLogger(__name__)
realtime_bp = Blueprint('realtime', __name__)

socketio = SocketIO()
hub = PresenceHub(SocketIOEmitter(socketio))


def _payload(data):
    return data if isinstance(data, dict) else {}


def _current():
    """Presence entry for the socket that sent the current event"""
    entry = hub.connection(request.sid)
    if entry is None:
        logger.debug(f"[WS] Ignoring event from unregistered socket {request.sid}")
    return entry


# ============================================================================
# CONNECTION LIFECYCLE
# ============================================================================

@socketio.on('connect')
def handle_connect(auth=None):
    token = _payload(auth).get('token') or request.args.get('token')

    try:
        user = verify_token(token)
    except ValueError as e:
        logger.info(f"[WS] Connection refused for {request.sid}: {e}")
        raise ConnectionRefusedError('Authentication required' if not token else 'Invalid token')

    hub.on_connect(user['id'], display_name(user), request.sid)


@socketio.on('disconnect')
def handle_disconnect(*args):
    hub.on_disconnect(request.sid)


# ============================================================================
# NOW PLAYING / CURRENTLY LISTENING
# ============================================================================

@socketio.on('track:playing')
def handle_track_playing(data):
    entry = _current()
    if entry:
        data = _payload(data)
        hub.on_track_playing(entry.user_id, data.get('trackId'), data.get('title'), data.get('artist'))


@socketio.on('track:paused')
def handle_track_paused(data=None):
    entry = _current()
    if entry:
        hub.on_track_paused(entry.user_id)


# ============================================================================
# REAL-TIME LIKES
# ============================================================================

@socketio.on('track:like')
def handle_track_like(data):
    entry = _current()
    if entry:
        hub.on_track_like(entry.user_id, entry.username, _payload(data).get('trackId'))


@socketio.on('track:unlike')
def handle_track_unlike(data):
    entry = _current()
    if entry:
        hub.on_track_unlike(entry.user_id, entry.username, _payload(data).get('trackId'))


# ============================================================================
# COLLABORATIVE PLAYLISTS
# ============================================================================

@socketio.on('playlist:join')
def handle_playlist_join(data):
    entry = _current()
    playlist_id = _payload(data).get('playlistId')
    if entry and playlist_id:
        hub.join_room(entry.user_id, playlist_id, request.sid)


@socketio.on('playlist:leave')
def handle_playlist_leave(data):
    entry = _current()
    playlist_id = _payload(data).get('playlistId')
    if entry and playlist_id:
        hub.leave_room(entry.user_id, playlist_id, request.sid)


@socketio.on('playlist:track-added')
def handle_playlist_track_added(data):
    entry = _current()
    data = _payload(data)
    if entry and data.get('playlistId'):
        hub.on_track_added_in_room(entry.user_id, data['playlistId'], data.get('track'), request.sid)


@socketio.on('playlist:track-removed')
def handle_playlist_track_removed(data):
    entry = _current()
    data = _payload(data)
    if entry and data.get('playlistId'):
        hub.on_track_removed_in_room(entry.user_id, data['playlistId'], data.get('trackId'), request.sid)


# ============================================================================
# HTTP
# ============================================================================

@realtime_bp.route('/api/presence/online', methods=['GET'])
@require_auth
def get_online_users():
    """
    Users currently connected over the socket

    Returns:
        200: {"success": true, "data": [{"userId", "username", "status", "currentTrack"}, ...]}
    """
    return jsonify({'success': True, 'data': hub.online_users()}), 200
