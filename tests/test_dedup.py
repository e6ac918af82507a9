#!/usr/bin/env python3
"""
Test suite for curation/dedup.py: windows, anniversary cross-feed block, in-batch collisions
"""

import json
import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from curation.catalog import FeedType, MovieItem, TVShowItem
from curation.config import CurationConfig
from curation.dedup import (
    BATCH_DUPLICATE_REASON,
    KEPT_REASON,
    DedupEngine,
    ExistingPost,
    can_post_anniversary,
    cleanup_old_posts,
    dedup_stats,
    deduplicate,
    is_duplicate_title,
    load_existing_posts,
    parse_timestamp,
    time_until_next_eligible,
)
from curation.scoring import ScoreBreakdown, ScoredItem


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_candidate(catalog_id=1, feed_type='weekly', media_type='movie', score=100.0):
    if media_type == 'movie':
        item = MovieItem(catalog_id=catalog_id, title=f'Movie {catalog_id}')
    else:
        item = TVShowItem(catalog_id=catalog_id, title=f'Show {catalog_id}')
    return ScoredItem(item=item, feed_type=FeedType.parse(feed_type), score=score,
                      breakdown=ScoreBreakdown())


def make_post(catalog_id=1, source='tmdb_weekly', days_ago=0.0, media_type='movie'):
    """Post scheduled `days_ago` days before NOW (negative = in the future)"""
    return ExistingPost(
        catalog_id=catalog_id,
        media_type=media_type,
        source=source,
        scheduled_time=NOW - timedelta(days=days_ago),
    )


def run(candidates, posts=(), **kwargs):
    return DedupEngine().deduplicate(candidates, list(posts), now=NOW, **kwargs)


# ---------------------------------------------------------------------------
# Standard window
# ---------------------------------------------------------------------------

class TestStandardWindow:

    def test_post_ten_days_ago_rejected(self):
        decisions = run([make_candidate()], [make_post(days_ago=10)])
        assert decisions[0].kept is False
        assert decisions[0].reason == 'Posted 10 days ago (within 30-day window)'
        assert decisions[0].conflicting_post.source == 'tmdb_weekly'

    def test_post_thirty_one_days_ago_accepted(self):
        decisions = run([make_candidate()], [make_post(days_ago=31)])
        assert decisions[0].kept is True
        assert decisions[0].reason == KEPT_REASON

    def test_post_exactly_at_window_edge_accepted(self):
        assert run([make_candidate()], [make_post(days_ago=30)])[0].kept is True

    def test_future_post_ignored_for_standard_feeds(self):
        assert run([make_candidate()], [make_post(days_ago=-5)])[0].kept is True

    def test_other_key_does_not_block(self):
        posts = [make_post(catalog_id=2, days_ago=1), make_post(catalog_id=1, media_type='tv', days_ago=1)]
        assert run([make_candidate(catalog_id=1)], posts)[0].kept is True

    def test_window_is_configurable(self):
        engine = DedupEngine(CurationConfig(dedup_window_days=7))
        decisions = engine.deduplicate([make_candidate()], [make_post(days_ago=10)], now=NOW)
        assert decisions[0].kept is True

    def test_is_duplicate_title_reports_days_since(self):
        check = is_duplicate_title((1, 'movie'), [make_post(days_ago=12.5)], now=NOW)
        assert check.is_duplicate
        assert check.days_since == 12


# ---------------------------------------------------------------------------
# Anniversary cross-feed block
# ---------------------------------------------------------------------------

class TestAnniversaryBlock:

    def test_weekly_post_twenty_days_ago_blocks_anniversary(self):
        decisions = run([make_candidate(feed_type='anniversary')], [make_post(days_ago=20)])
        assert decisions[0].kept is False
        assert 'anniversary' in decisions[0].reason.lower()
        assert 'tmdb_weekly' in decisions[0].reason

    def test_weekly_post_forty_five_days_ago_blocks_anniversary_only(self):
        post = make_post(days_ago=45)
        assert run([make_candidate(feed_type='anniversary')], [post])[0].kept is False
        assert run([make_candidate(feed_type='weekly')], [post])[0].kept is True

    def test_future_standard_post_blocks_anniversary(self):
        decisions = run([make_candidate(feed_type='anniversary')], [make_post(days_ago=-40)])
        assert decisions[0].kept is False
        assert 'scheduled in 40 days' in decisions[0].reason

    def test_standard_post_beyond_sixty_days_does_not_block(self):
        posts = [make_post(days_ago=70), make_post(days_ago=-70)]
        assert run([make_candidate(feed_type='anniversary')], posts)[0].kept is True

    def test_anniversary_post_does_not_trigger_cross_rule(self):
        post = make_post(source='tmdb_anniversary', days_ago=45)
        assert run([make_candidate(feed_type='anniversary')], [post])[0].kept is True

    def test_recent_anniversary_post_still_hits_standard_window(self):
        post = make_post(source='tmdb_anniversary', days_ago=10)
        decision = run([make_candidate(feed_type='anniversary')], [post])[0]
        assert decision.kept is False
        assert decision.reason.startswith('Posted 10 days ago')

    def test_rule_is_one_directional(self):
        """Anniversary posts never block standard feeds beyond the 30-day window"""
        post = make_post(source='tmdb_anniversary', days_ago=40)
        assert run([make_candidate(feed_type='weekly')], [post])[0].kept is True

    def test_anniversary_post_blocks_weekly_inside_standard_window(self):
        post = make_post(source='tmdb_anniversary', days_ago=10)
        assert run([make_candidate(feed_type='weekly')], [post])[0].kept is False

    def test_unknown_source_counts_as_non_anniversary(self):
        post = make_post(source='manual', days_ago=45)
        check = can_post_anniversary((1, 'movie'), [post], now=NOW)
        assert check.is_duplicate
        assert 'manual' in check.reason


# ---------------------------------------------------------------------------
# In-batch collisions
# ---------------------------------------------------------------------------

class TestBatchCollisions:

    def test_second_occurrence_rejected(self):
        candidates = [make_candidate(feed_type='anniversary', score=120),
                      make_candidate(feed_type='anniversary', score=90)]
        decisions = run(candidates)
        assert [d.kept for d in decisions] == [True, False]
        assert decisions[1].reason == BATCH_DUPLICATE_REASON
        assert 'Duplicate in current batch' in decisions[1].reason

    def test_same_id_different_media_type_both_kept(self):
        candidates = [make_candidate(catalog_id=7), make_candidate(catalog_id=7, media_type='tv')]
        assert [d.kept for d in run(candidates)] == [True, True]

    def test_rejected_candidate_does_not_enter_seen(self):
        candidates = [make_candidate(), make_candidate()]
        decisions = run(candidates, [make_post(days_ago=3)])
        assert [d.kept for d in decisions] == [False, False]
        assert all(d.reason.startswith('Posted 3 days ago') for d in decisions)

    def test_caller_owned_seen_set(self):
        seen = {(1, 'movie')}
        decisions = run([make_candidate(1), make_candidate(2)], seen=seen)
        assert [d.kept for d in decisions] == [False, True]
        assert seen == {(1, 'movie'), (2, 'movie')}

    def test_no_state_between_calls(self):
        engine = DedupEngine()
        first = engine.deduplicate([make_candidate()], [], now=NOW)
        second = engine.deduplicate([make_candidate()], [], now=NOW)
        assert first[0].kept and second[0].kept

    def test_decisions_follow_input_order(self):
        candidates = [make_candidate(i) for i in (5, 3, 9)]
        assert [d.item.item.catalog_id for d in run(candidates)] == [5, 3, 9]

    def test_module_level_deduplicate(self):
        decisions = deduplicate([make_candidate()], [make_post(days_ago=2)], now=NOW)
        assert decisions[0].kept is False


# ---------------------------------------------------------------------------
# Cooldown, stats, housekeeping
# ---------------------------------------------------------------------------

class TestCooldown:

    def test_no_posts_can_post(self):
        cooldown = time_until_next_eligible((1, 'movie'), [], now=NOW)
        assert cooldown.can_post is True
        assert cooldown.days_remaining == 0

    def test_days_remaining_uses_most_recent_post(self):
        posts = [make_post(days_ago=25), make_post(days_ago=10)]
        cooldown = time_until_next_eligible((1, 'movie'), posts, now=NOW)
        assert cooldown.can_post is False
        assert cooldown.days_remaining == 20

    def test_partial_day_rounds_up(self):
        cooldown = time_until_next_eligible((1, 'movie'), [make_post(days_ago=10.5)], now=NOW)
        assert cooldown.days_remaining == 20

    def test_expired_window(self):
        cooldown = DedupEngine().time_until_next_eligible((1, 'movie'), [make_post(days_ago=31)], now=NOW)
        assert cooldown.can_post is True


class TestStatsAndHousekeeping:

    def test_dedup_stats_groups_reasons(self):
        candidates = [
            make_candidate(1, feed_type='anniversary'),
            make_candidate(2),
            make_candidate(3),
            make_candidate(3),
        ]
        posts = [make_post(1, days_ago=20), make_post(2, days_ago=4)]
        stats = dedup_stats(run(candidates, posts))
        assert stats['total'] == 4
        assert stats['kept'] == 1
        assert stats['removed'] == 3
        assert stats['removal_reasons']['Cannot post anniversary'] == 1
        assert stats['removal_reasons']['Posted 4 days ago (within 30-day window)'] == 1
        assert stats['removal_reasons'][BATCH_DUPLICATE_REASON] == 1

    def test_cleanup_old_posts(self):
        posts = [make_post(1, days_ago=100), make_post(2, days_ago=89), make_post(3, days_ago=-3)]
        kept = cleanup_old_posts(posts, now=NOW)
        assert [p.catalog_id for p in kept] == [2, 3]

    def test_parse_timestamp_handles_z_suffix(self):
        parsed = parse_timestamp('2026-10-01T09:30:00.000Z')
        assert parsed == datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc)

    def test_naive_timestamp_taken_as_utc(self):
        assert parse_timestamp('2026-10-01T09:30:00').tzinfo is not None

    def test_from_dict_camel_case(self):
        post = ExistingPost.from_dict({
            'tmdbId': 603, 'mediaType': 'movie', 'source': 'tmdb_anniversary',
            'scheduledTime': '2026-09-01T12:00:00Z',
        })
        assert post.key == (603, 'movie')
        assert post.is_anniversary
        assert post.feed_type is FeedType.ANNIVERSARY

    def test_from_dict_rejects_incomplete(self):
        with pytest.raises(ValueError):
            ExistingPost.from_dict({'tmdbId': 603, 'mediaType': 'movie'})

    def test_load_existing_posts_skips_bad_records(self, tmp_path):
        path = tmp_path / 'posts.json'
        path.write_text(json.dumps({'posts': [
            {'catalog_id': 1, 'media_type': 'tv', 'source': 'tmdb_weekly',
             'scheduled_time': '2026-10-10T08:00:00+00:00'},
            {'catalog_id': 2, 'media_type': 'podcast', 'source': 'tmdb_weekly',
             'scheduled_time': '2026-10-10T08:00:00+00:00'},
            {'catalog_id': 3, 'media_type': 'movie', 'source': 'tmdb_today',
             'scheduled_time': 'not a date'},
        ]}), encoding='utf-8')

        posts = load_existing_posts(path)
        assert len(posts) == 1
        assert posts[0].key == (1, 'tv')

    def test_cleanup_retention_is_adjustable(self):
        posts = [make_post(1, days_ago=40), make_post(2, days_ago=10)]
        assert [p.catalog_id for p in cleanup_old_posts(posts, retention_days=30, now=NOW)] == [2]


class TestNaiveTimestamps:
    """Posts and `now` built without tzinfo are treated as UTC"""

    def test_naive_post_time_normalized(self):
        post = ExistingPost(1, 'movie', 'tmdb_weekly', datetime(2026, 10, 9, 12))
        assert post.scheduled_time == datetime(2026, 10, 9, 12, tzinfo=timezone.utc)

    def test_deduplicate_with_naive_post_and_now(self):
        post = ExistingPost(1, 'movie', 'tmdb_weekly', datetime(2026, 10, 9, 12))
        decisions = DedupEngine().deduplicate([make_candidate()], [post],
                                              now=datetime(2026, 10, 19, 12))
        assert decisions[0].kept is False
        assert decisions[0].reason == 'Posted 10 days ago (within 30-day window)'

    def test_anniversary_check_with_naive_post(self):
        post = ExistingPost(1, 'movie', 'tmdb_weekly', datetime(2026, 9, 1, 12))
        decisions = run([make_candidate(feed_type='anniversary')], [post])
        assert decisions[0].kept is False
        assert 'anniversary' in decisions[0].reason.lower()

    def test_cooldown_with_naive_post(self):
        post = ExistingPost(1, 'movie', 'tmdb_weekly', datetime(2026, 10, 9, 12))
        cooldown = time_until_next_eligible((1, 'movie'), [post], now=NOW)
        assert cooldown.can_post is False
        assert cooldown.days_remaining == 20

    def test_cleanup_with_naive_post(self):
        post = ExistingPost(1, 'movie', 'tmdb_weekly', datetime(2026, 1, 1))
        assert cleanup_old_posts([post], now=NOW) == []
