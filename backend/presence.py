"""
Presence & Room Broadcaster

Tracks which users are connected, what they are listening to and which
collaborative playlist rooms they have joined, and fans events out to the
other connected clients.

State:
    users        user_id -> PresenceEntry (one per user, newest socket wins)
    connections  socket id -> user_id
    rooms        "playlist:<id>" -> set of user ids (empty rooms are dropped)

The hub never talks to Socket.IO directly. It goes through an emitter
(SocketIOEmitter in production, a recorder in tests). Every emit is
fire-and-forget: a transport failure is logged and never reaches the caller.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)

STATUS_ONLINE = 'online'
STATUS_LISTENING = 'listening'

ROOM_PREFIX = 'playlist:'


def room_id(playlist_id) -> str:
    return f"{ROOM_PREFIX}{playlist_id}"


@dataclass
class PresenceEntry:
    user_id: str
    socket_id: str
    username: str
    current_track: Optional[dict] = None
    status: str = STATUS_ONLINE
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'userId': self.user_id,
            'username': self.username,
            'status': self.status,
            'currentTrack': self.current_track,
        }


class SocketIOEmitter:
    """Adapts a flask_socketio.SocketIO instance to the hub's transport interface"""

    def __init__(self, socketio, namespace='/'):
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event, data, to=None, skip_sid=None):
        self.socketio.emit(event, data, to=to, skip_sid=skip_sid, namespace=self.namespace)

    def join_room(self, room, sid):
        self.socketio.server.enter_room(sid, room, namespace=self.namespace)

    def leave_room(self, room, sid):
        self.socketio.server.leave_room(sid, room, namespace=self.namespace)

    def disconnect(self, sid):
        self.socketio.server.disconnect(sid, namespace=self.namespace)


class PresenceHub:
    """Connection registry, room membership and event fan-out"""

    def __init__(self, emitter):
        self.emitter = emitter
        self.users: Dict[str, PresenceEntry] = {}
        self.connections: Dict[str, str] = {}
        self.rooms: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    def _emit(self, event, data, to=None, skip_sid=None):
        try:
            self.emitter.emit(event, data, to=to, skip_sid=skip_sid)
        except Exception as e:
            logger.warning(f"[WS] Failed to emit {event}: {e}")

    def _transport(self, action, *args):
        try:
            getattr(self.emitter, action)(*args)
        except Exception as e:
            logger.warning(f"[WS] Transport {action}{args} failed: {e}")

    def broadcast(self, event, data):
        """Emit to every connected client"""
        self._emit(event, data)

    def emit_to_user(self, user_id, event, data):
        """Emit to a user's current socket, if they are connected"""
        entry = self.users.get(user_id)
        if entry:
            self._emit(event, data, to=entry.socket_id)

    def emit_to_room(self, room, event, data):
        self._emit(event, data, to=room)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def connection(self, sid) -> Optional[PresenceEntry]:
        """The presence entry a socket belongs to, if it is still the user's live socket"""
        with self._lock:
            user_id = self.connections.get(sid)
            entry = self.users.get(user_id) if user_id else None
            if entry and entry.socket_id == sid:
                return entry
            return None

    def online_users(self):
        with self._lock:
            return [entry.to_dict() for entry in self.users.values()]

    def room_members(self, playlist_id):
        with self._lock:
            return list(self.rooms.get(room_id(playlist_id), ()))

    def reset(self):
        with self._lock:
            self.users.clear()
            self.connections.clear()
            self.rooms.clear()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def on_connect(self, user_id, username, sid):
        """
        Register a new socket for user_id

        A user has at most one entry. If they were already connected on a
        different socket, that socket is disconnected.
        """
        with self._lock:
            previous = self.users.get(user_id)
            self.users[user_id] = PresenceEntry(user_id=user_id, socket_id=sid, username=username)
            self.connections[sid] = user_id
            if previous and previous.socket_id != sid:
                self.connections.pop(previous.socket_id, None)
            online = [entry.to_dict() for entry in self.users.values()]

        logger.info(f"[WS] User connected: {username} ({user_id})")

        if previous and previous.socket_id != sid:
            logger.info(f"[WS] Closing superseded socket {previous.socket_id} for {user_id}")
            self._transport('disconnect', previous.socket_id)

        self._emit('user:online', {'userId': user_id, 'username': username}, skip_sid=sid)
        self._emit('users:online', online, to=sid)

    def on_disconnect(self, sid):
        """
        Remove a socket's user from presence and from every room

        A superseded socket closing after its user reconnected removes nothing.
        """
        with self._lock:
            user_id = self.connections.pop(sid, None)
            entry = self.users.get(user_id) if user_id else None
            if entry is None or entry.socket_id != sid:
                return

            del self.users[user_id]
            left_rooms = []
            for room, members in list(self.rooms.items()):
                if user_id in members:
                    members.discard(user_id)
                    left_rooms.append(room)
                    if not members:
                        del self.rooms[room]

        logger.info(f"[WS] User disconnected: {entry.username}")

        for room in left_rooms:
            self._emit('playlist:user-left', {
                'userId': user_id,
                'playlistId': room[len(ROOM_PREFIX):],
            }, to=room)

        self._emit('user:offline', {'userId': user_id}, skip_sid=sid)

    # ------------------------------------------------------------------
    # Now playing
    # ------------------------------------------------------------------

    def on_track_playing(self, user_id, track_id, title, artist):
        track = {'trackId': track_id, 'title': title, 'artist': artist}

        with self._lock:
            entry = self.users.get(user_id)
            if entry is None:
                return
            entry.current_track = track
            entry.status = STATUS_LISTENING
            username = entry.username

        self._emit('user:listening', {'userId': user_id, 'username': username, 'track': track})

    def on_track_paused(self, user_id):
        with self._lock:
            entry = self.users.get(user_id)
            if entry is None:
                return
            entry.status = STATUS_ONLINE

        self._emit('user:paused', {'userId': user_id})

    # ------------------------------------------------------------------
    # Likes
    # ------------------------------------------------------------------

    def on_track_like(self, user_id, username, track_id):
        self._emit('track:liked', {'trackId': track_id, 'userId': user_id, 'username': username})

    def on_track_unlike(self, user_id, username, track_id):
        self._emit('track:unliked', {'trackId': track_id, 'userId': user_id, 'username': username})

    # ------------------------------------------------------------------
    # Collaborative playlist rooms
    # ------------------------------------------------------------------

    def join_room(self, user_id, playlist_id, sid):
        room = room_id(playlist_id)

        with self._lock:
            entry = self.users.get(user_id)
            if entry is None:
                return
            self.rooms.setdefault(room, set()).add(user_id)
            members = list(self.rooms[room])
            username = entry.username

        self._transport('join_room', room, sid)

        self._emit('playlist:user-joined', {
            'userId': user_id,
            'username': username,
            'playlistId': playlist_id,
        }, to=room, skip_sid=sid)
        self._emit('playlist:users', {'playlistId': playlist_id, 'users': members}, to=sid)

    def leave_room(self, user_id, playlist_id, sid):
        room = room_id(playlist_id)

        with self._lock:
            members = self.rooms.get(room)
            if members is not None:
                members.discard(user_id)
                if not members:
                    del self.rooms[room]

        self._transport('leave_room', room, sid)

        self._emit('playlist:user-left', {'userId': user_id, 'playlistId': playlist_id},
                   to=room, skip_sid=sid)

    def on_track_added_in_room(self, user_id, playlist_id, track, sid):
        entry = self.users.get(user_id)
        if entry is None:
            return

        self._emit('playlist:track-added', {
            'playlistId': playlist_id,
            'track': track,
            'addedBy': {'userId': user_id, 'username': entry.username},
        }, to=room_id(playlist_id), skip_sid=sid)

    def on_track_removed_in_room(self, user_id, playlist_id, track_id, sid):
        entry = self.users.get(user_id)
        if entry is None:
            return

        self._emit('playlist:track-removed', {
            'playlistId': playlist_id,
            'trackId': track_id,
            'removedBy': {'userId': user_id, 'username': entry.username},
        }, to=room_id(playlist_id), skip_sid=sid)
