"""Tests for the hybrid recommendation engine."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from cache_utils import MemoryCache
from conftest import FakeMusicStore, track
from errors import NotFoundError, UpstreamError
from recommender import RecommendationEngine, TasteProfile, merge_unique, rank_by_count


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def make_engine(executor):
    def factory(store):
        return RecommendationEngine(store=store, cache=MemoryCache(), executor=executor)
    return factory


def ids(results):
    return [t['id'] for t in results]


# =============================================================================
# TASTE PROFILE
# =============================================================================

class TestTasteProfile:
    def test_top_genres_and_artists_by_frequency(self):
        favorites = [
            {'track_id': '1', 'genre': 'Jazz', 'artist': 'Coltrane'},
            {'track_id': '2', 'genre': 'Rock', 'artist': 'Queen'},
            {'track_id': '3', 'genre': 'Rock', 'artist': 'Queen'},
            {'track_id': '4', 'genre': 'Pop', 'artist': 'Abba'},
            {'track_id': '5', 'genre': 'Metal', 'artist': 'Tool'},
            {'track_id': '6', 'genre': 'Metal', 'artist': 'Muse'},
            {'track_id': '7', 'genre': 'Metal', 'artist': 'Bjork'},
            {'track_id': '8', 'genre': 'Folk', 'artist': 'Dylan'},
        ]

        profile = TasteProfile.from_favorites(favorites)

        assert profile.top_genres == ['Metal', 'Rock', 'Jazz']
        assert profile.top_artists == ['Queen', 'Coltrane', 'Abba', 'Tool', 'Muse']
        assert profile.liked_track_ids == ['1', '2', '3', '4', '5', '6', '7', '8']

    def test_ties_keep_first_seen_order(self):
        favorites = [
            {'track_id': '1', 'genre': 'Soul', 'artist': 'B'},
            {'track_id': '2', 'genre': 'Funk', 'artist': 'A'},
            {'track_id': '3', 'genre': 'Funk', 'artist': 'B'},
            {'track_id': '4', 'genre': 'Soul', 'artist': 'A'},
        ]

        profile = TasteProfile.from_favorites(favorites)

        assert profile.top_genres == ['Soul', 'Funk']
        assert profile.top_artists == ['B', 'A']

    def test_missing_genre_and_artist_are_not_counted(self):
        favorites = [
            {'track_id': '1', 'genre': None, 'artist': None},
            {'track_id': '2', 'genre': 'Jazz', 'artist': None},
        ]

        profile = TasteProfile.from_favorites(favorites)

        assert profile.top_genres == ['Jazz']
        assert profile.top_artists == []


def test_rank_by_count_is_stable():
    tracks = [track('a'), track('b'), track('c'), track('b'), track('c')]
    assert [(t['id'], n) for t, n in rank_by_count(tracks)] == [('b', 2), ('c', 2), ('a', 1)]


def test_merge_unique_keeps_first_occurrence():
    first = [{'id': '1', 'from': 'a'}, {'id': '2', 'from': 'a'}]
    second = [{'id': '2', 'from': 'b'}, {'id': '3', 'from': 'b'}]

    merged = merge_unique(first, second, limit=10)

    assert [(t['id'], t['from']) for t in merged] == [('1', 'a'), ('2', 'a'), ('3', 'b')]
    assert len(merge_unique(first, second, limit=2)) == 2


# =============================================================================
# RECOMMEND
# =============================================================================

class TestRecommend:
    def test_user_without_favorites_gets_popular_tracks(self, make_engine):
        store = FakeMusicStore(
            tracks=[track('t1'), track('t2'), track('t3')],
            favorites=[('u2', 't2'), ('u3', 't1'), ('u4', 't2'), ('u5', 't3'), ('u6', 't2'), ('u7', 't3')],
        )
        engine = make_engine(store)

        results = engine.recommend('u1', limit=2)

        assert ids(results) == ['t2', 't3']
        assert [t['score'] for t in results] == [3, 2]
        assert all(t['recommendation_type'] == 'popular' for t in results)
        assert all(t['recommendation_reason'] == 'Trending now' for t in results)
        assert store.called('get_favorite_sample') == [{'limit': 100}]
        assert not store.called('find_tracks_by_taste')

    def test_genre_only_matches_score_two_in_insertion_order(self, make_engine):
        store = FakeMusicStore(
            tracks=[
                track('f1', 'Electronic', 'Artist A'),
                track('f2', 'Electronic', 'Artist B'),
                track('f3', 'Electronic', 'Artist C'),
                track('c1', 'Electronic', 'Artist D'),
                track('c2', 'Electronic', 'Artist E'),
                track('c3', 'Electronic', 'Artist F'),
                track('c4', 'Electronic', 'Artist G'),
                track('x1', 'Country', 'Artist H'),
            ],
            favorites=[('u1', 'f1'), ('u1', 'f2'), ('u1', 'f3')],
        )
        engine = make_engine(store)

        results = engine.recommend('u1', limit=5)

        assert ids(results) == ['c1', 'c2', 'c3']
        assert all(t['recommendation_type'] == 'content-based' for t in results)
        assert all(t['score'] == 2 for t in results)
        assert all(t['recommendation_reason'] == 'Based on your taste in Electronic' for t in results)

    def test_no_duplicate_ids_and_collaborative_wins_ties(self, make_engine):
        store = FakeMusicStore(
            tracks=[
                track('mine', 'House', 'Disclosure'),
                track('shared', 'House', 'Kaytranada'),
                track('other', 'House', 'Floating Points'),
                track('neighbor-only', 'Ambient', 'Eno'),
            ],
            favorites=[
                ('u1', 'mine'),
                ('u2', 'mine'), ('u2', 'shared'), ('u2', 'neighbor-only'),
            ],
        )
        engine = make_engine(store)

        results = engine.recommend('u1', limit=6)

        assert len(ids(results)) == len(set(ids(results)))
        by_id = {t['id']: t for t in results}
        assert by_id['shared']['recommendation_type'] == 'collaborative'
        assert by_id['shared']['recommendation_reason'] == 'Users with similar taste enjoyed this'
        assert by_id['other']['recommendation_type'] == 'content-based'
        assert 'mine' not in by_id
        assert ids(results)[:2] == ['shared', 'neighbor-only']

    def test_collaborative_scores_by_neighbor_favorite_count(self, make_engine):
        store = FakeMusicStore(
            tracks=[track('seed'), track('once'), track('twice'), track('thrice')],
            favorites=[
                ('u1', 'seed'),
                ('u2', 'seed'), ('u3', 'seed'), ('u4', 'seed'),
                ('u2', 'once'),
                ('u2', 'twice'), ('u3', 'twice'),
                ('u2', 'thrice'), ('u3', 'thrice'), ('u4', 'thrice'),
            ],
        )
        engine = make_engine(store)

        results = engine.collaborative(['seed'], 'u1', limit=3)

        assert ids(results) == ['thrice', 'twice', 'once']
        assert [t['score'] for t in results] == [3, 2, 1]
        neighbor_query = store.called('get_neighbor_favorites')[0]
        assert neighbor_query['user_ids'] == ['u2', 'u3', 'u4']
        assert neighbor_query['exclude_track_ids'] == ['seed']
        assert neighbor_query['limit'] == 6

    def test_collaborative_seeds_are_capped_at_ten(self, make_engine):
        liked = [f't{i}' for i in range(15)]
        store = FakeMusicStore(tracks=[track(t) for t in liked], favorites=[('u1', t) for t in liked])
        engine = make_engine(store)

        assert engine.collaborative(liked, 'u1', limit=3) == []

        query = store.called('get_neighbor_user_ids')[0]
        assert query['track_ids'] == liked[:10]
        assert query['exclude_user_id'] == 'u1'
        assert query['limit'] == 50
        assert not store.called('get_neighbor_favorites')

    def test_content_based_artist_match_outranks_genre_match(self, make_engine):
        store = FakeMusicStore(tracks=[
            track('genre-only', 'Jazz', 'Someone'),
            track('artist-only', 'Fusion', 'Miles Davis'),
            track('both', 'Jazz', 'Miles Davis'),
        ])
        engine = make_engine(store)

        results = engine.content_based(['Jazz'], ['Miles Davis'], [], limit=3)

        assert [(t['id'], t['score']) for t in results] == [('both', 5), ('artist-only', 3), ('genre-only', 2)]
        assert results[0]['recommendation_reason'] == 'Because you like Miles Davis'
        assert results[2]['recommendation_reason'] == 'Based on your taste in Jazz'

    def test_content_based_without_taste_skips_the_query(self, make_engine):
        store = FakeMusicStore(tracks=[track('a', 'Jazz')])
        engine = make_engine(store)

        assert engine.content_based([], [], [], limit=5) == []
        assert not store.called('find_tracks_by_taste')

    def test_strategies_request_half_the_limit(self, make_engine):
        store = FakeMusicStore(
            tracks=[track('f1', 'Jazz', 'Monk')],
            favorites=[('u1', 'f1')],
        )
        engine = make_engine(store)

        engine.recommend('u1', limit=5)

        assert store.called('find_tracks_by_taste')[0]['limit'] == 6
        assert store.called('find_tracks_by_taste')[0]['exclude_ids'] == ['f1']

    def test_failing_collaborative_source_still_returns_content(self, make_engine):
        store = FakeMusicStore(
            tracks=[track('f1', 'Jazz', 'Monk'), track('c1', 'Jazz', 'Evans')],
            favorites=[('u1', 'f1')],
        )
        store.fail.add('get_neighbor_user_ids')
        engine = make_engine(store)

        results = engine.recommend('u1', limit=4)

        assert ids(results) == ['c1']

    def test_failing_content_source_still_returns_collaborative(self, make_engine):
        store = FakeMusicStore(
            tracks=[track('f1', 'Jazz', 'Monk'), track('n1', 'Pop', 'Robyn')],
            favorites=[('u1', 'f1'), ('u2', 'f1'), ('u2', 'n1')],
        )
        store.fail.add('find_tracks_by_taste')
        engine = make_engine(store)

        results = engine.recommend('u1', limit=4)

        assert ids(results) == ['n1']
        assert results[0]['recommendation_type'] == 'collaborative'

    def test_favorites_failure_propagates_and_is_not_cached(self, make_engine):
        store = FakeMusicStore(tracks=[track('t1')], favorites=[('u2', 't1')])
        store.fail.add('get_user_favorites')
        engine = make_engine(store)

        with pytest.raises(UpstreamError):
            engine.recommend('u1', limit=3)

        assert not engine.cache.has('recommendations:u1')

    def test_results_are_cached_per_user(self, make_engine):
        store = FakeMusicStore(tracks=[track('t1'), track('t2')], favorites=[('u2', 't1'), ('u3', 't2')])
        engine = make_engine(store)

        first = engine.recommend('u1', limit=5)
        second = engine.recommend('u1', limit=5)

        assert second == first
        assert len(store.called('get_user_favorites')) == 1
        assert engine.cache.get('recommendations:u1') == first

    def test_smaller_limit_is_served_from_cached_list(self, make_engine):
        store = FakeMusicStore(
            tracks=[track('t1'), track('t2'), track('t3')],
            favorites=[('u2', 't1'), ('u3', 't2'), ('u4', 't3')],
        )
        engine = make_engine(store)

        engine.recommend('u1', limit=3)

        assert len(engine.recommend('u1', limit=1)) == 1

    def test_invalidate_user_forces_recompute(self, make_engine):
        store = FakeMusicStore(tracks=[track('t1')], favorites=[('u2', 't1')])
        engine = make_engine(store)

        engine.recommend('u1', limit=3)
        assert engine.invalidate_user('u1') == 1
        engine.recommend('u1', limit=3)

        assert len(store.called('get_user_favorites')) == 2


# =============================================================================
# SIMILAR TRACKS
# =============================================================================

class TestSimilarTo:
    def test_returns_tracks_sharing_genre_or_artist(self, make_engine):
        store = FakeMusicStore(tracks=[
            track('src', 'Jazz', 'Monk'),
            track('same-genre', 'Jazz', 'Evans'),
            track('same-artist', 'Bebop', 'Monk'),
            track('unrelated', 'Pop', 'Robyn'),
        ])
        engine = make_engine(store)

        source, similar = engine.similar_to('src', limit=6)

        assert source['id'] == 'src'
        assert ids(similar) == ['same-genre', 'same-artist']

    def test_respects_limit(self, make_engine):
        store = FakeMusicStore(tracks=[track('src', 'Jazz')] + [track(f'j{i}', 'Jazz') for i in range(5)])
        engine = make_engine(store)

        _, similar = engine.similar_to('src', limit=2)

        assert len(similar) == 2

    def test_missing_source_raises_not_found(self, make_engine):
        engine = make_engine(FakeMusicStore())

        with pytest.raises(NotFoundError):
            engine.similar_to('nope')

    def test_source_lookup_failure_propagates(self, make_engine):
        store = FakeMusicStore(tracks=[track('src', 'Jazz')])
        store.fail.add('get_track')
        engine = make_engine(store)

        with pytest.raises(UpstreamError):
            engine.similar_to('src')
