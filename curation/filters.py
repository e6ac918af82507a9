#!/usr/bin/env python3
"""
Filter Engine: ordered eligibility gates per candidate

Rule order (first failure halts evaluation):
1. region       US production or origin country
2. popularity   per-feed popularity floor; released titles need 300+ votes
3. genre        no rejected genre, at least one approved genre
4. studio       major studio/network or franchise, else popularity >= 50
5. images       poster AND backdrop present (presence only)
6. title        keyword blacklist, TV type, direct-to-video, runtime, episodes
7. trending     chart position, with popularity fallback when no hints
8. anniversary  anniversary feed only: votes, rating, budget floor

filter() never raises and never returns a bare boolean: the reasons list
records every rule that was evaluated, ending with the failure that halted
the chain or with PASSED_MARKER.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from curation.catalog import CandidateItem, FeedType, NO_HINTS, RankHints
from curation.config import CurationConfig
from curation.constants import GENRE_NAMES

logger = logging.getLogger(__name__)

PASSED_MARKER = 'Passed all filters'

FILTER_RULES = (
    'region',
    'popularity',
    'genre',
    'studio',
    'images',
    'title',
    'trending',
    'anniversary',
)

RuleCheck = Tuple[bool, str]


@dataclass
class FilterOutcome:
    """Verdict plus the trail of evaluated rules"""
    passed: bool
    reasons: List[str] = field(default_factory=list)
    failed_rule: Optional[str] = None

    @property
    def reason(self) -> str:
        """Last entry: the halting failure, or the pass marker"""
        return self.reasons[-1] if self.reasons else ''


@dataclass
class FilterStats:
    """Batch tally of filter outcomes"""
    total: int = 0
    passed: int = 0
    failed: int = 0
    by_rule: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    reasons: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record(self, outcome: FilterOutcome):
        self.total += 1
        if outcome.passed:
            self.passed += 1
            return
        self.failed += 1
        self.by_rule[outcome.failed_rule] += 1
        self.reasons[outcome.reason] += 1


def _lower_all(values) -> List[str]:
    return [str(v).lower() for v in values or []]


def _genre_labels(genre_ids) -> str:
    return ', '.join(GENRE_NAMES.get(g, str(g)) for g in genre_ids)


class FilterEngine:
    """Apply the ordered rule chain using tables from CurationConfig"""

    def __init__(self, config: Optional[CurationConfig] = None):
        self.config = config or CurationConfig()
        self.approved_genres = set(self.config.approved_genre_ids)
        self.rejected_genres = set(self.config.rejected_genre_ids)
        self.rejected_tv_types = set(self.config.rejected_tv_types)
        self.major_studios = _lower_all(self.config.major_studios)
        self.rejected_keywords = _lower_all(self.config.rejected_keywords)

    def filter(self, item: CandidateItem, feed_type, hints: Optional[RankHints] = None,
               now: Optional[datetime] = None) -> FilterOutcome:
        """Run the rule chain for one item and feed type"""
        feed_type = FeedType.parse(feed_type)
        hints = hints or NO_HINTS

        rules: List[Tuple[str, Callable[[], RuleCheck]]] = [
            ('region', lambda: self._check_region(item)),
            ('popularity', lambda: self._check_popularity(item, feed_type, now)),
            ('genre', lambda: self._check_genres(item)),
            ('studio', lambda: self._check_studio(item)),
            ('images', lambda: self._check_images(item)),
            ('title', lambda: self._check_title(item)),
            ('trending', lambda: self._check_trending(item, feed_type, hints)),
        ]
        if feed_type is FeedType.ANNIVERSARY:
            rules.append(('anniversary', lambda: self._check_anniversary(item)))

        reasons: List[str] = []
        for name, check in rules:
            ok, detail = check()
            if not ok:
                reasons.append(detail)
                logger.debug(f"Filter reject {item.key} '{item.title}' [{feed_type.value}]: {detail}")
                return FilterOutcome(passed=False, reasons=reasons, failed_rule=name)
            reasons.append(f"{name}: {detail}")

        reasons.append(PASSED_MARKER)
        return FilterOutcome(passed=True, reasons=reasons)

    # ------------------------------------------------------------------
    # Single-rule predicates (operator probes)
    # ------------------------------------------------------------------

    def is_us_content(self, item: CandidateItem) -> bool:
        return self._check_region(item)[0]

    def meets_popularity_threshold(self, item: CandidateItem, feed_type,
                                   now: Optional[datetime] = None) -> bool:
        return self._check_popularity(item, FeedType.parse(feed_type), now)[0]

    def has_approved_genres(self, item: CandidateItem) -> bool:
        return self._check_genres(item)[0]

    def has_major_studio(self, item: CandidateItem) -> bool:
        """Major studio/network affiliation or franchise collection membership"""
        return self.major_affiliation(item) is not None or item.has_collection

    def has_sufficient_images(self, item: CandidateItem) -> bool:
        return self._check_images(item)[0]

    def is_eligible_title(self, item: CandidateItem) -> bool:
        return self._check_title(item)[0]

    def meets_trending_threshold(self, item: CandidateItem, feed_type,
                                 hints: Optional[RankHints] = None) -> bool:
        return self._check_trending(item, FeedType.parse(feed_type), hints or NO_HINTS)[0]

    def is_eligible_anniversary(self, item: CandidateItem) -> bool:
        return self._check_anniversary(item)[0]

    def major_affiliation(self, item: CandidateItem) -> Optional[str]:
        """First affiliation name containing an allow-listed studio, if any"""
        for name in item.affiliations:
            name_lower = name.lower()
            if any(studio in name_lower for studio in self.major_studios):
                return name
        return None

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _check_region(self, item: CandidateItem) -> RuleCheck:
        if 'US' in item.production_countries:
            return True, 'US production country'
        if 'US' in item.origin_country or 'USA' in item.origin_country:
            return True, 'US origin country'
        if not item.production_countries and not item.origin_country:
            return False, 'Not US content (no country data)'
        return False, 'Not US content'

    def _check_popularity(self, item: CandidateItem, feed_type: FeedType,
                          now: Optional[datetime]) -> RuleCheck:
        threshold = self.config.popularity_threshold(feed_type)
        if item.popularity is None:
            return False, f"Popularity unknown, threshold {threshold:g} for {feed_type.value}"
        if item.popularity < threshold:
            return False, (f"Popularity {item.popularity:g} below threshold "
                           f"{threshold:g} for {feed_type.value}")

        if item.released_on(now):
            min_votes = self.config.released_min_vote_count
            if item.vote_count is None or item.vote_count < min_votes:
                return False, (f"Popularity check failed: released title has "
                               f"{item.vote_count or 0} votes (< {min_votes})")
            return True, f"popularity {item.popularity:g}, {item.vote_count} votes"

        return True, f"popularity {item.popularity:g} (unreleased, vote check skipped)"

    def _check_genres(self, item: CandidateItem) -> RuleCheck:
        genres = set(item.genre_ids)
        if not genres:
            return False, 'Genre not approved (no genre data)'
        rejected = sorted(genres & self.rejected_genres)
        if rejected:
            return False, f"Rejected genre present: {_genre_labels(rejected)}"
        approved = sorted(genres & self.approved_genres)
        if not approved:
            return False, 'Genre not approved'
        return True, f"approved genres {_genre_labels(approved)}"

    def _check_studio(self, item: CandidateItem) -> RuleCheck:
        affiliation = self.major_affiliation(item)
        if affiliation:
            return True, f"major studio '{affiliation}'"
        if item.has_collection:
            return True, 'franchise collection'
        floor = self.config.studio_gate_min_popularity
        if item.popularity is None or item.popularity < floor:
            return False, f"Not major studio and popularity < {floor:g}"
        return True, f"no major studio, popularity {item.popularity:g} >= {floor:g}"

    def _check_images(self, item: CandidateItem) -> RuleCheck:
        if not item.poster_path and not item.backdrop_path:
            return False, 'Insufficient image quality (missing poster and backdrop)'
        if not item.poster_path:
            return False, 'Insufficient image quality (missing poster)'
        if not item.backdrop_path:
            return False, 'Insufficient image quality (missing backdrop)'
        return True, 'poster and backdrop present'

    def _check_title(self, item: CandidateItem) -> RuleCheck:
        combined = f"{item.title or ''} {item.overview or ''}".lower()
        for keyword in self.rejected_keywords:
            if keyword in combined:
                return False, f"Title contains rejected keyword '{keyword}'"

        show_type = item.show_type
        if show_type and show_type in self.rejected_tv_types:
            return False, f"Rejected TV type '{show_type}'"

        if item.is_direct_to_video:
            return False, 'Direct-to-video release'

        runtime = item.runtime_minutes
        if runtime and runtime < self.config.min_movie_runtime:
            return False, f"Runtime {runtime} min below {self.config.min_movie_runtime}"

        episodes = item.episode_count
        if episodes and episodes < self.config.min_tv_episodes:
            return False, f"Only {episodes} episodes (< {self.config.min_tv_episodes})"

        return True, 'title eligible'

    def _check_trending(self, item: CandidateItem, feed_type: FeedType,
                        hints: RankHints) -> RuleCheck:
        cfg = self.config
        trending, upcoming = hints.trending_rank, hints.upcoming_rank
        popularity = item.popularity if item.popularity is not None else 0.0

        if feed_type in (FeedType.TODAY, FeedType.WEEKLY):
            if trending and trending <= cfg.trending_rank_limit:
                return True, f"trending rank {trending}"
            if upcoming and upcoming <= cfg.upcoming_rank_limit:
                return True, f"upcoming rank {upcoming}"
            if hints.empty:
                if popularity >= cfg.trending_fallback_popularity:
                    return True, f"no rank data, popularity {popularity:g}"
                return False, (f"Does not meet trending threshold (no rank data, "
                               f"popularity < {cfg.trending_fallback_popularity:g})")
            return False, 'Does not meet trending threshold'

        if feed_type is FeedType.MONTHLY:
            if upcoming and upcoming <= cfg.monthly_upcoming_rank_limit:
                return True, f"upcoming rank {upcoming}"
            if not upcoming:
                if popularity >= cfg.monthly_fallback_popularity:
                    return True, f"no upcoming rank, popularity {popularity:g}"
                return False, (f"Does not meet trending threshold (no upcoming rank, "
                               f"popularity < {cfg.monthly_fallback_popularity:g})")
            return False, 'Does not meet trending threshold'

        # anniversary: notability stands in for chart position
        if self._is_notable(item):
            return True, 'notable back-catalog title'
        return False, 'Does not meet trending threshold (anniversary needs votes and rating)'

    def _check_anniversary(self, item: CandidateItem) -> RuleCheck:
        cfg = self.config
        if not self._is_notable(item):
            return False, (f"Does not meet anniversary eligibility (needs "
                           f"{cfg.anniversary_min_vote_count}+ votes and "
                           f"{cfg.anniversary_min_vote_average:g}+ rating)")
        budget = item.production_budget
        if budget and budget < cfg.anniversary_min_budget:
            return False, f"Does not meet anniversary eligibility (budget {budget} likely indie)"
        return True, 'anniversary eligible'

    def _is_notable(self, item: CandidateItem) -> bool:
        cfg = self.config
        return (
            item.vote_count is not None
            and item.vote_count >= cfg.anniversary_min_vote_count
            and item.vote_average is not None
            and item.vote_average >= cfg.anniversary_min_vote_average
        )
