"""
Pytest configuration for the music streaming backend tests.

Adds backend/ to sys.path so that the flat module imports used by the app
(`import cache_utils`, `from routes import ...`) work, sets the environment
the config module reads at import time, and defines shared fakes for the data
store, the socket transport and Supabase access tokens.
"""
import os
import sys
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
import pytest

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

TEST_JWT_SECRET = 'test-supabase-jwt-secret-with-enough-length-0123456789'

os.environ['SUPABASE_JWT_SECRET'] = TEST_JWT_SECRET
os.environ['APP_ENV'] = 'test'
os.environ['CACHE_MAX_ENTRIES'] = '0'

from errors import UpstreamError  # noqa: E402


# =============================================================================
# TOKENS
# =============================================================================

def make_token(user_id, username=None, expires_in=3600, audience='authenticated', secret=TEST_JWT_SECRET):
    """Sign an access token shaped like the ones Supabase Auth issues"""
    payload = {
        'sub': user_id,
        'email': f'{user_id}@example.com',
        'aud': audience,
        'role': 'authenticated',
        'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    if username:
        payload['user_metadata'] = {'username': username}
    return jwt.encode(payload, secret, algorithm='HS256')


def auth_headers(user_id, username=None):
    return {'Authorization': f'Bearer {make_token(user_id, username)}'}


# =============================================================================
# FAKE DATA STORE
# =============================================================================

def track(track_id, genre=None, artist=None, title=None):
    return {
        'id': track_id,
        'title': title or f'Track {track_id}',
        'genre': genre,
        'artist': artist,
    }


class FakeMusicStore:
    """
    In-memory stand-in for music_db with the same query semantics

    favorites is a list of (user_id, track_id) pairs in insertion order.
    Put a query name in `fail` to make it raise UpstreamError.
    """

    def __init__(self, tracks=(), favorites=()):
        self.tracks = {t['id']: dict(t) for t in tracks}
        self.favorites = list(favorites)
        self.fail = set()
        self.calls = []

    def _call(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.fail:
            raise UpstreamError(f'{name} failed')

    def called(self, name):
        return [kwargs for call, kwargs in self.calls if call == name]

    def get_track(self, track_id):
        self._call('get_track', track_id=track_id)
        found = self.tracks.get(track_id)
        return dict(found) if found else None

    def get_user_favorites(self, user_id, limit=50):
        self._call('get_user_favorites', user_id=user_id, limit=limit)
        rows = [
            {'track_id': t, 'genre': self.tracks[t].get('genre'), 'artist': self.tracks[t].get('artist')}
            for u, t in self.favorites if u == user_id
        ]
        return rows[:limit]

    def get_neighbor_user_ids(self, track_ids, exclude_user_id, limit=50):
        self._call('get_neighbor_user_ids', track_ids=list(track_ids),
                   exclude_user_id=exclude_user_id, limit=limit)
        rows = [u for u, t in self.favorites if t in track_ids and u != exclude_user_id]
        return rows[:limit]

    def get_neighbor_favorites(self, user_ids, exclude_track_ids, limit):
        self._call('get_neighbor_favorites', user_ids=list(user_ids),
                   exclude_track_ids=list(exclude_track_ids), limit=limit)
        rows = [
            dict(self.tracks[t]) for u, t in self.favorites
            if u in user_ids and t not in exclude_track_ids
        ]
        return rows[:limit]

    def find_tracks_by_taste(self, genres, artists, exclude_ids, limit):
        self._call('find_tracks_by_taste', genres=list(genres), artists=list(artists),
                   exclude_ids=list(exclude_ids), limit=limit)
        rows = [
            dict(t) for t in self.tracks.values()
            if (t.get('genre') in genres or t.get('artist') in artists) and t['id'] not in exclude_ids
        ]
        return rows[:limit]

    def get_favorite_sample(self, limit=100):
        self._call('get_favorite_sample', limit=limit)
        return [dict(self.tracks[t]) for _, t in self.favorites][:limit]

    def find_similar_tracks(self, source, limit):
        self._call('find_similar_tracks', source_id=source['id'], limit=limit)
        rows = [
            dict(t) for t in self.tracks.values()
            if t['id'] != source['id']
            and (t.get('genre') == source.get('genre') or t.get('artist') == source.get('artist'))
        ]
        return rows[:limit]


# =============================================================================
# FAKE SOCKET TRANSPORT
# =============================================================================

Emit = namedtuple('Emit', ['event', 'data', 'to', 'skip_sid'])


class RecordingEmitter:
    """Records everything the presence hub sends to the transport"""

    def __init__(self):
        self.emitted = []
        self.joined = []
        self.left = []
        self.disconnected = []

    def emit(self, event, data, to=None, skip_sid=None):
        self.emitted.append(Emit(event, data, to, skip_sid))

    def join_room(self, room, sid):
        self.joined.append((room, sid))

    def leave_room(self, room, sid):
        self.left.append((room, sid))

    def disconnect(self, sid):
        self.disconnected.append(sid)

    def events(self, name):
        return [e for e in self.emitted if e.event == name]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def flask_app():
    from app import app
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture(autouse=True)
def reset_process_state():
    """Presence and cache are process-wide; start every test from empty"""
    import cache_utils
    from routes.realtime import hub

    cache_utils.cache.flush()
    hub.reset()
    yield
    cache_utils.cache.flush()
    hub.reset()


@pytest.fixture
def store(monkeypatch):
    """Swap the data store behind the shared recommendation engine"""
    from recommender import engine

    fake = FakeMusicStore()
    monkeypatch.setattr(engine, 'store', fake)
    return fake
