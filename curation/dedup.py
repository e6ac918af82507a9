#!/usr/bin/env python3
"""
Deduplication Engine

Rules, applied to each candidate strictly in input order:
1. A (catalog_id, media_type) key already kept in this batch is dropped.
2. A past post of the same key inside the standard window (30 days) blocks
   the candidate. Posts scheduled after now are ignored by this rule.
3. Anniversary candidates only: any non-anniversary post of the same key
   within 60 days of now, past or future, blocks the candidate. This is
   checked before rule 2 so the decision names the cross-feed conflict.

Rule 3 is one-directional: anniversary posts never block standard feeds.

The "seen" set is owned by one deduplicate() call (or passed in by the
caller that owns the batch); nothing here keeps state between calls.
"""

import json
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from curation.catalog import FeedType, MEDIA_TYPES, ensure_utc
from curation.config import CurationConfig
from curation.constants import POST_RETENTION_DAYS

logger = logging.getLogger(__name__)

Key = Tuple[int, str]

KEPT_REASON = 'Passed deduplication checks'
BATCH_DUPLICATE_REASON = 'Duplicate in current batch (earlier occurrence kept)'

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ExistingPost:
    """Scheduled or published post, owned by the scheduler; read-only here"""
    catalog_id: int
    media_type: str
    source: str
    scheduled_time: datetime

    def __post_init__(self):
        # naive times are UTC, same as `now`
        object.__setattr__(self, 'scheduled_time', ensure_utc(self.scheduled_time))

    @property
    def key(self) -> Key:
        return (self.catalog_id, self.media_type)

    @property
    def feed_type(self) -> Optional[FeedType]:
        try:
            return FeedType.parse(self.source)
        except ValueError:
            return None

    @property
    def is_anniversary(self) -> bool:
        return self.feed_type is FeedType.ANNIVERSARY

    @classmethod
    def from_dict(cls, data: Dict) -> 'ExistingPost':
        """Accept scheduler exports in camelCase (tmdbId, ...) or snake_case"""
        catalog_id = data.get('catalog_id', data.get('tmdbId', data.get('tmdb_id')))
        media_type = data.get('media_type', data.get('mediaType'))
        source = data.get('source', data.get('feed_type', ''))
        scheduled = data.get('scheduled_time', data.get('scheduledTime'))
        if catalog_id is None or media_type not in MEDIA_TYPES or not scheduled:
            raise ValueError(f"Incomplete post record: {data}")
        return cls(
            catalog_id=int(catalog_id),
            media_type=media_type,
            source=str(source),
            scheduled_time=parse_timestamp(scheduled),
        )


@dataclass(frozen=True)
class DedupDecision:
    item: object
    kept: bool
    reason: str
    conflicting_post: Optional[ExistingPost] = None


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    reason: Optional[str] = None
    conflicting_post: Optional[ExistingPost] = None
    days_since: Optional[int] = None


@dataclass(frozen=True)
class Cooldown:
    can_post: bool
    days_remaining: int = 0


NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


def parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(text))


def _days(delta_seconds: float) -> int:
    return math.floor(delta_seconds / SECONDS_PER_DAY)


def _posts_for(key: Key, existing_posts: Iterable[ExistingPost]) -> List[ExistingPost]:
    return [p for p in existing_posts if p.key == key]


def is_duplicate_title(key: Key, existing_posts: Iterable[ExistingPost],
                       window_days: int = 30, now: Optional[datetime] = None) -> DuplicateCheck:
    """Same-key post on or before now, less than window_days old"""
    now = ensure_utc(now)
    window = window_days * SECONDS_PER_DAY

    for post in _posts_for(key, existing_posts):
        if post.scheduled_time > now:
            continue
        elapsed = (now - post.scheduled_time).total_seconds()
        if elapsed < window:
            days_since = _days(elapsed)
            return DuplicateCheck(
                is_duplicate=True,
                reason=f"Posted {days_since} days ago (within {window_days}-day window)",
                conflicting_post=post,
                days_since=days_since,
            )
    return NOT_DUPLICATE


def can_post_anniversary(key: Key, existing_posts: Iterable[ExistingPost],
                         window_days: int = 60, now: Optional[datetime] = None) -> DuplicateCheck:
    """Non-anniversary post of the same key within window_days of now, either direction"""
    now = ensure_utc(now)
    window = window_days * SECONDS_PER_DAY

    for post in _posts_for(key, existing_posts):
        if post.is_anniversary:
            continue
        delta = (now - post.scheduled_time).total_seconds()
        if abs(delta) >= window:
            continue
        days_since = _days(delta)
        if delta >= 0:
            when = f"from {days_since} days ago"
        else:
            when = f"scheduled in {_days(-delta)} days"
        return DuplicateCheck(
            is_duplicate=True,
            reason=(f"Cannot post anniversary: {post.source} post exists {when} "
                    f"({window_days}-day block)"),
            conflicting_post=post,
            days_since=days_since,
        )
    return NOT_DUPLICATE


def time_until_next_eligible(key: Key, existing_posts: Iterable[ExistingPost],
                             window_days: int = 30, now: Optional[datetime] = None) -> Cooldown:
    """Remaining cooldown after the most recent post of key; reports only, never decides"""
    posts = _posts_for(key, existing_posts)
    if not posts:
        return Cooldown(can_post=True)

    now = ensure_utc(now)
    most_recent = max(posts, key=lambda p: p.scheduled_time)
    elapsed = (now - most_recent.scheduled_time).total_seconds()
    window = window_days * SECONDS_PER_DAY
    if elapsed >= window:
        return Cooldown(can_post=True)
    return Cooldown(can_post=False, days_remaining=math.ceil((window - elapsed) / SECONDS_PER_DAY))


class DedupEngine:
    """Batch deduplication against existing posts and within the batch"""

    def __init__(self, config: Optional[CurationConfig] = None):
        self.config = config or CurationConfig()

    def deduplicate(self, candidates: Iterable, existing_posts: Iterable[ExistingPost],
                    now: Optional[datetime] = None,
                    seen: Optional[Set[Key]] = None) -> List[DedupDecision]:
        """
        One DedupDecision per candidate, in input order.

        Candidates expose `key` and `feed_type` (ScoredItem does). Pass `seen`
        to share the in-batch key set across calls belonging to one batch;
        accepted keys are added to it.
        """
        now = ensure_utc(now)
        seen = set() if seen is None else seen

        by_key: Dict[Key, List[ExistingPost]] = defaultdict(list)
        for post in existing_posts:
            by_key[post.key].append(post)

        decisions = []
        for candidate in candidates:
            key = candidate.key
            feed_type = FeedType.parse(candidate.feed_type)
            posts = by_key.get(key, [])

            if key in seen:
                decisions.append(DedupDecision(candidate, False, BATCH_DUPLICATE_REASON))
                continue

            # Cross-feed block first so its reason wins when both rules fire
            check = NOT_DUPLICATE
            if feed_type is FeedType.ANNIVERSARY:
                check = can_post_anniversary(
                    key, posts, self.config.anniversary_cross_window_days, now)
            if not check.is_duplicate:
                check = is_duplicate_title(key, posts, self.config.dedup_window_days, now)

            if check.is_duplicate:
                logger.debug(f"Dedup reject {key}: {check.reason}")
                decisions.append(DedupDecision(
                    candidate, False, check.reason, check.conflicting_post))
                continue

            seen.add(key)
            decisions.append(DedupDecision(candidate, True, KEPT_REASON))

        return decisions

    def time_until_next_eligible(self, key: Key, existing_posts: Iterable[ExistingPost],
                                 window_days: Optional[int] = None,
                                 now: Optional[datetime] = None) -> Cooldown:
        if window_days is None:
            window_days = self.config.dedup_window_days
        return time_until_next_eligible(key, existing_posts, window_days, now)


def deduplicate(candidates: Iterable, existing_posts: Iterable[ExistingPost],
                now: Optional[datetime] = None,
                seen: Optional[Set[Key]] = None) -> List[DedupDecision]:
    """deduplicate() with the default 30/60-day windows"""
    return DedupEngine().deduplicate(candidates, existing_posts, now=now, seen=seen)


def dedup_stats(decisions: Iterable[DedupDecision]) -> Dict:
    """Totals plus removal reasons grouped by the text before the first ':'"""
    decisions = list(decisions)
    removal_reasons = defaultdict(int)
    for decision in decisions:
        if not decision.kept:
            removal_reasons[decision.reason.split(':')[0]] += 1
    kept = sum(1 for d in decisions if d.kept)
    return {
        'total': len(decisions),
        'kept': kept,
        'removed': len(decisions) - kept,
        'removal_reasons': dict(removal_reasons),
    }


def cleanup_old_posts(posts: Iterable[ExistingPost], retention_days: int = POST_RETENTION_DAYS,
                      now: Optional[datetime] = None) -> List[ExistingPost]:
    """Drop posts scheduled before the retention cutoff"""
    cutoff = ensure_utc(now) - timedelta(days=retention_days)
    return [p for p in posts if p.scheduled_time >= cutoff]


def load_existing_posts(path: Path) -> List[ExistingPost]:
    """Load the scheduler's JSON export (a list of post records)"""
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)

    if isinstance(raw, dict):
        raw = raw.get('posts', [])

    posts = []
    for entry in raw:
        try:
            posts.append(ExistingPost.from_dict(entry))
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping post record: {e}")
    logger.info(f"Loaded {len(posts)} existing posts from {path}")
    return posts
