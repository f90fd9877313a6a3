"""
Music Database Operations

All catalog and favorites queries used by the recommendation engine and the
favorites routes. Tables (owned by the Supabase schema):

    tracks     (id uuid, title, artist, album, genre, duration, audio_url,
                cover_url, play_count, created_at)
    favorites  (id uuid, user_id uuid, track_id uuid, created_at,
                UNIQUE (user_id, track_id))

Every function raises errors.UpstreamError when the database call fails.
"""

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from db_utils import execute_query, execute_update

logger = logging.getLogger(__name__)


def is_valid_id(value) -> bool:
    """Track and user ids are UUIDs; anything else cannot match a row"""
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _track(row):
    """Normalize a tracks row for JSON and cache use"""
    if row is None:
        return None
    track = dict(row)
    track['id'] = str(track['id'])
    return track


# ============================================================================
# TRACKS
# ============================================================================

def get_track(track_id: str) -> Optional[dict]:
    """Look up a single track by id"""
    if not is_valid_id(track_id):
        return None
    row = execute_query("SELECT * FROM tracks WHERE id = %s", (track_id,), fetch_one=True)
    return _track(row)


def find_tracks_by_taste(genres: Sequence[str], artists: Sequence[str],
                         exclude_ids: Sequence[str], limit: int) -> List[dict]:
    """
    Find tracks whose genre is in genres OR whose artist is in artists

    With only one of the two lists non-empty the other criterion is dropped.
    Newest tracks first.

    Args:
        genres: Genres to match
        artists: Artists to match
        exclude_ids: Track ids never returned
        limit: Maximum rows

    Returns:
        List of track dicts
    """
    conditions = []
    params = []

    if genres and artists:
        conditions.append("(genre = ANY(%s) OR artist = ANY(%s))")
        params.extend([list(genres), list(artists)])
    elif genres:
        conditions.append("genre = ANY(%s)")
        params.append(list(genres))
    elif artists:
        conditions.append("artist = ANY(%s)")
        params.append(list(artists))

    if exclude_ids:
        conditions.append("NOT (id = ANY(%s::uuid[]))")
        params.append(list(exclude_ids))

    query = "SELECT * FROM tracks"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY created_at DESC LIMIT %s"
    params.append(limit)

    return [_track(row) for row in execute_query(query, tuple(params))]


def find_similar_tracks(track: dict, limit: int) -> List[dict]:
    """Tracks sharing the given track's genre or artist, excluding the track itself"""
    rows = execute_query("""
        SELECT * FROM tracks
        WHERE (genre = %s OR artist = %s)
          AND id <> %s
        LIMIT %s
    """, (track.get('genre'), track.get('artist'), track['id'], limit))
    return [_track(row) for row in rows]


# ============================================================================
# FAVORITES
# ============================================================================

def get_user_favorites(user_id: str, limit: int = 50) -> List[dict]:
    """
    Get a user's favorites with the genre and artist of each track

    Returns:
        List of {'track_id', 'genre', 'artist'} dicts, oldest favorite first
    """
    rows = execute_query("""
        SELECT f.track_id::text as track_id, t.genre, t.artist
        FROM favorites f
        INNER JOIN tracks t ON t.id = f.track_id
        WHERE f.user_id = %s
        ORDER BY f.created_at
        LIMIT %s
    """, (user_id, limit))
    return list(rows)


def get_neighbor_user_ids(track_ids: Sequence[str], exclude_user_id: str, limit: int = 50) -> List[str]:
    """
    Users other than exclude_user_id who favorited any of track_ids

    Returns:
        One user id per matching favorite row (may repeat)
    """
    rows = execute_query("""
        SELECT user_id::text as user_id
        FROM favorites
        WHERE track_id = ANY(%s::uuid[])
          AND user_id <> %s
        LIMIT %s
    """, (list(track_ids), exclude_user_id, limit))
    return [row['user_id'] for row in rows]


def get_neighbor_favorites(user_ids: Sequence[str], exclude_track_ids: Sequence[str], limit: int) -> List[dict]:
    """
    Tracks favorited by user_ids, excluding exclude_track_ids

    Returns:
        One track dict per favorite row, so a track favorited by three of the
        users appears three times
    """
    rows = execute_query("""
        SELECT t.*
        FROM favorites f
        INNER JOIN tracks t ON t.id = f.track_id
        WHERE f.user_id = ANY(%s::uuid[])
          AND NOT (f.track_id = ANY(%s::uuid[]))
        LIMIT %s
    """, (list(user_ids), list(exclude_track_ids), limit))
    return [_track(row) for row in rows]


def get_favorite_sample(limit: int = 100) -> List[dict]:
    """A sample of favorite rows across all users, one track dict per row"""
    rows = execute_query("""
        SELECT t.*
        FROM favorites f
        INNER JOIN tracks t ON t.id = f.track_id
        LIMIT %s
    """, (limit,))
    return [_track(row) for row in rows]


def list_favorites(user_id: str) -> List[dict]:
    """All of a user's favorited tracks, most recent first"""
    rows = execute_query("""
        SELECT t.*, f.created_at as favorited_at
        FROM favorites f
        INNER JOIN tracks t ON t.id = f.track_id
        WHERE f.user_id = %s
        ORDER BY f.created_at DESC
    """, (user_id,))
    return [_track(row) for row in rows]


def add_favorite(user_id: str, track_id: str) -> dict:
    """
    Add a favorite

    Raises:
        errors.ConflictError: If the track is already a favorite
    """
    row = execute_update("""
        INSERT INTO favorites (user_id, track_id)
        VALUES (%s, %s)
        RETURNING id::text as id, created_at
    """, (user_id, track_id), returning=True)
    logger.info(f"User {user_id} favorited track {track_id}")
    return row


def remove_favorite(user_id: str, track_id: str) -> bool:
    """Remove a favorite, returning False if it did not exist"""
    if not is_valid_id(track_id):
        return False
    removed = execute_update("""
        DELETE FROM favorites
        WHERE user_id = %s AND track_id = %s
    """, (user_id, track_id))
    if removed:
        logger.info(f"User {user_id} unfavorited track {track_id}")
    return removed > 0


def count_favorites(track_id: str) -> int:
    row = execute_query(
        "SELECT COUNT(*) as count FROM favorites WHERE track_id = %s",
        (track_id,),
        fetch_one=True
    )
    return row['count'] if row else 0
