"""
Recommendation Engine

Hybrid track recommendations for a user:

1. Collaborative filtering - "users who liked tracks you like also liked these"
2. Content-based filtering - tracks matching the user's top genres and artists
3. Popularity fallback - most favorited tracks, for users with no favorites

Collaborative and content-based results are computed concurrently, merged
(collaborative first), de-duplicated by track id and cached per user.

A failure inside one filtering strategy only removes that strategy's
contribution. Failing to load the user's favorites fails the request.
"""

import logging
import math
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Sequence

import cache_utils
import music_db
from config import RECOMMENDER_WORKERS
from errors import NotFoundError

logger = logging.getLogger(__name__)

FAVORITES_SAMPLE = 50
TOP_GENRES = 3
TOP_ARTISTS = 5
COLLABORATIVE_SEEDS = 10
MAX_NEIGHBORS = 50
POPULAR_SAMPLE = 100

GENRE_MATCH_SCORE = 2
ARTIST_MATCH_SCORE = 3

TYPE_COLLABORATIVE = 'collaborative'
TYPE_CONTENT_BASED = 'content-based'
TYPE_POPULAR = 'popular'


@dataclass
class TasteProfile:
    """A user's preferences derived from one snapshot of their favorites"""
    top_genres: List[str] = field(default_factory=list)
    top_artists: List[str] = field(default_factory=list)
    liked_track_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_favorites(cls, favorites):
        """
        Build a profile from favorites rows ({'track_id', 'genre', 'artist'})

        Genres and artists are ranked by how often they occur. Equal counts
        keep the order in which they first appear in favorites.
        """
        genres = Counter(f['genre'] for f in favorites if f.get('genre'))
        artists = Counter(f['artist'] for f in favorites if f.get('artist'))

        return cls(
            top_genres=[genre for genre, _ in genres.most_common(TOP_GENRES)],
            top_artists=[artist for artist, _ in artists.most_common(TOP_ARTISTS)],
            liked_track_ids=[f['track_id'] for f in favorites],
        )


def scored(track, score, recommendation_type, reason):
    """A track row tagged with its score and why it was recommended"""
    return {
        **track,
        'score': score,
        'recommendation_type': recommendation_type,
        'recommendation_reason': reason,
    }


def rank_by_count(tracks):
    """
    Count occurrences of each track id

    Returns:
        [(track, count)] sorted by count descending, ties in first-seen order
    """
    counts = Counter(t['id'] for t in tracks)
    first_seen = {}
    for track in tracks:
        first_seen.setdefault(track['id'], track)

    return sorted(
        ((first_seen[track_id], count) for track_id, count in counts.items()),
        key=lambda pair: pair[1],
        reverse=True
    )


def merge_unique(*result_lists, limit):
    """Concatenate result lists, keep the first occurrence of each track id, truncate"""
    merged = []
    seen_ids = set()

    for results in result_lists:
        for track in results:
            if track['id'] in seen_ids:
                continue
            seen_ids.add(track['id'])
            merged.append(track)

    return merged[:limit]


class RecommendationEngine:
    """
    Hybrid recommender over a data store

    Args:
        store: Object exposing the music_db query functions
        cache: cache_utils.MemoryCache used to memoize results per user
        executor: Executor the two filtering strategies run on
    """

    def __init__(self, store=music_db, cache=None, executor=None):
        self.store = store
        self.cache = cache if cache is not None else cache_utils.cache
        self.executor = executor or ThreadPoolExecutor(
            max_workers=RECOMMENDER_WORKERS,
            thread_name_prefix="Recommender"
        )

    @staticmethod
    def cache_key(user_id):
        return f"{cache_utils.CACHE_KEYS['RECOMMENDATIONS']}{user_id}"

    def recommend(self, user_id: str, limit: int = 10) -> List[dict]:
        """
        Personalized recommendations for a user

        Args:
            user_id: Requesting user
            limit: Maximum number of tracks

        Returns:
            Scored tracks, at most limit, no track id twice

        Raises:
            UpstreamError: If the user's favorites cannot be loaded
        """
        recommendations = self.cache.get_or_set(
            self.cache_key(user_id),
            lambda: self._compute(user_id, limit),
            cache_utils.TTL['RECOMMENDATIONS']
        )
        # The cache key is per user; a smaller limit reuses a larger cached list
        return recommendations[:limit]

    def _compute(self, user_id, limit):
        favorites = self.store.get_user_favorites(user_id, limit=FAVORITES_SAMPLE)

        if not favorites:
            logger.info(f"User {user_id} has no favorites, using popular tracks")
            return self.popular(limit)

        profile = TasteProfile.from_favorites(favorites)
        per_strategy = math.ceil(limit / 2)

        collaborative = self.executor.submit(
            self.collaborative, profile.liked_track_ids, user_id, per_strategy
        )
        content_based = self.executor.submit(
            self.content_based, profile.top_genres, profile.top_artists,
            profile.liked_track_ids, per_strategy
        )

        results = merge_unique(collaborative.result(), content_based.result(), limit=limit)
        logger.info(f"Computed {len(results)} recommendations for user {user_id} "
                    f"(genres={profile.top_genres}, artists={profile.top_artists})")
        return results

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def collaborative(self, liked_track_ids: Sequence[str], user_id: str, limit: int) -> List[dict]:
        """
        Tracks favorited by users who share favorites with user_id

        Each candidate is scored by how many neighbor favorites point at it.
        """
        if not liked_track_ids:
            return []

        try:
            seeds = list(liked_track_ids)[:COLLABORATIVE_SEEDS]
            neighbor_rows = self.store.get_neighbor_user_ids(seeds, user_id, limit=MAX_NEIGHBORS)
            neighbor_ids = list(dict.fromkeys(neighbor_rows))

            if not neighbor_ids:
                return []

            candidates = self.store.get_neighbor_favorites(
                neighbor_ids, list(liked_track_ids), limit=limit * 2
            )

            return [
                scored(track, count, TYPE_COLLABORATIVE, "Users with similar taste enjoyed this")
                for track, count in rank_by_count(candidates)[:limit]
            ]
        except Exception as e:
            logger.error(f"Collaborative filtering error for user {user_id}: {e}", exc_info=True)
            return []

    def content_based(self, top_genres: Sequence[str], top_artists: Sequence[str],
                      exclude_ids: Sequence[str], limit: int) -> List[dict]:
        """Tracks matching the top genres (+2) and/or top artists (+3)"""
        if not top_genres and not top_artists:
            return []

        try:
            tracks = self.store.find_tracks_by_taste(
                list(top_genres), list(top_artists), list(exclude_ids), limit=limit * 2
            )

            ranked = []
            for track in tracks:
                genre_match = track.get('genre') in top_genres
                artist_match = track.get('artist') in top_artists
                score = (GENRE_MATCH_SCORE if genre_match else 0) + (ARTIST_MATCH_SCORE if artist_match else 0)

                if artist_match:
                    reason = f"Because you like {track['artist']}"
                else:
                    reason = f"Based on your taste in {track.get('genre')}"

                ranked.append(scored(track, score, TYPE_CONTENT_BASED, reason))

            ranked.sort(key=lambda t: t['score'], reverse=True)
            return ranked[:limit]
        except Exception as e:
            logger.error(f"Content-based filtering error: {e}", exc_info=True)
            return []

    def popular(self, limit: int) -> List[dict]:
        """Most favorited tracks in a system-wide sample of favorites"""
        try:
            sample = self.store.get_favorite_sample(limit=POPULAR_SAMPLE)
            return [
                scored(track, count, TYPE_POPULAR, "Trending now")
                for track, count in rank_by_count(sample)[:limit]
            ]
        except Exception as e:
            logger.error(f"Popular tracks error: {e}", exc_info=True)
            return []

    # ------------------------------------------------------------------
    # Similar tracks
    # ------------------------------------------------------------------

    def similar_to(self, track_id: str, limit: int = 6):
        """
        Tracks sharing a genre or artist with track_id

        Returns:
            (source_track, similar_tracks)

        Raises:
            NotFoundError: If track_id does not exist
            UpstreamError: If the source track cannot be loaded
        """
        source = self.store.get_track(track_id)
        if not source:
            raise NotFoundError('Track not found')

        return source, self.store.find_similar_tracks(source, limit)

    def invalidate_user(self, user_id: str) -> int:
        """Drop a user's cached recommendations"""
        return self.cache.delete(self.cache_key(user_id))


engine = RecommendationEngine()
