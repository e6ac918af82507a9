#!/usr/bin/env python3
"""
Scoring & Ranking Engine

score = popularity + trending + genre + studio + vote-count penalty
        + collection + hype, floored at 0.

prioritize() orders by score and, when two scores are within tie_epsilon,
falls through the tie-break cascade:
blockbuster rating > popularity > vote count > vote average > collection.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, List, Optional

from curation.catalog import CandidateItem, FeedType, NO_HINTS, RankHints
from curation.config import CurationConfig
from curation.filters import FilterEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreBreakdown:
    popularity_score: float = 0.0
    trending_score: float = 0.0
    genre_score: float = 0.0
    studio_bonus: float = 0.0
    vote_count_penalty: float = 0.0
    collection_bonus: float = 0.0
    hype_score: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.popularity_score
            + self.trending_score
            + self.genre_score
            + self.studio_bonus
            + self.vote_count_penalty
            + self.collection_bonus
            + self.hype_score
        )


@dataclass(frozen=True)
class ScoredItem:
    """Candidate with its score; rank is 0 until prioritize() assigns it"""
    item: CandidateItem
    feed_type: FeedType
    score: float
    breakdown: ScoreBreakdown
    hints: RankHints = NO_HINTS
    rank: int = 0

    @property
    def key(self):
        return self.item.key


def _num(value) -> float:
    return float(value) if value is not None else 0.0


def blockbuster_rating(item: CandidateItem) -> float:
    """vote_average * log10(vote_count + 1); tie-break signal only"""
    return _num(item.vote_average) * math.log10(_num(item.vote_count) + 1)


class ScoringEngine:
    """Weighted scoring over items that passed the filter chain"""

    def __init__(self, config: Optional[CurationConfig] = None,
                 filter_engine: Optional[FilterEngine] = None):
        self.config = config or CurationConfig()
        self.filters = filter_engine or FilterEngine(self.config)
        self.approved_genres = set(self.config.approved_genre_ids)
        self.high_demand_genres = set(self.config.high_demand_genre_ids)

    def score(self, item: CandidateItem, feed_type, hints: Optional[RankHints] = None,
              now: Optional[datetime] = None) -> ScoredItem:
        feed_type = FeedType.parse(feed_type)
        hints = hints or NO_HINTS

        breakdown = ScoreBreakdown(
            popularity_score=self.popularity_score(item, feed_type),
            trending_score=self.trending_score(hints),
            genre_score=self.genre_score(item),
            studio_bonus=self.studio_bonus(item),
            vote_count_penalty=self.vote_count_penalty(item),
            collection_bonus=self.collection_bonus(item),
            hype_score=self.hype_score(item, feed_type, now),
        )
        return ScoredItem(
            item=item,
            feed_type=feed_type,
            score=max(0.0, breakdown.total),
            breakdown=breakdown,
            hints=hints,
        )

    # --- components ---------------------------------------------------

    def popularity_score(self, item: CandidateItem, feed_type: FeedType) -> float:
        base = min(_num(item.popularity) * 0.5, 100.0)
        return base * self.config.popularity_weight(feed_type)

    def trending_score(self, hints: RankHints) -> float:
        score = 0.0
        if hints.trending_rank:
            score = max(0.0, 50 - hints.trending_rank / 3)
        if hints.upcoming_rank:
            score = max(score, max(0.0, 50 - hints.upcoming_rank / 5))
        return score

    def genre_score(self, item: CandidateItem) -> float:
        approved = sum(1 for g in item.genre_ids if g in self.approved_genres)
        score = float(min(approved * 10, 30))
        if any(g in self.high_demand_genres for g in item.genre_ids):
            score += 10
        return score

    def studio_bonus(self, item: CandidateItem) -> float:
        if not self.filters.has_major_studio(item):
            return 0.0
        bonus = 40.0
        if any(studio in company
               for company in item.production_companies
               for studio in self.config.top_tier_studios):
            bonus += 20
        return bonus

    def vote_count_penalty(self, item: CandidateItem) -> float:
        votes = item.vote_count or 0
        if votes < 500:
            return -30.0
        if votes < 1000:
            return -15.0
        if votes < 2000:
            return -5.0
        return 0.0

    def collection_bonus(self, item: CandidateItem) -> float:
        return 25.0 if item.has_collection else 0.0

    def hype_score(self, item: CandidateItem, feed_type: FeedType,
                   now: Optional[datetime] = None) -> float:
        rating = _num(item.vote_average)
        score = 0.0
        if rating >= 8.0:
            score += 20
        elif rating >= 7.0:
            score += 10
        elif rating >= 6.0:
            score += 5

        if feed_type.value in self.config.recency_hype_feeds:
            days = item.days_until_release(now)
            if days is not None and abs(days) <= self.config.recency_hype_days:
                score += 15
        return score

    def hype_factor(self, item: CandidateItem) -> float:
        """Standalone buzz estimate for review screens; not part of score()"""
        hype = _num(item.vote_average) * 10
        hype += min(_num(item.popularity) * 0.5, 50)
        if item.has_collection:
            hype += 25
        if self.filters.has_major_studio(item):
            hype += 15
        return hype


def _tie_break(a: ScoredItem, b: ScoredItem, epsilon: float) -> float:
    if abs(a.score - b.score) < epsilon:
        a_item, b_item = a.item, b.item

        a_block, b_block = blockbuster_rating(a_item), blockbuster_rating(b_item)
        if a_block != b_block:
            return b_block - a_block

        a_pop, b_pop = _num(a_item.popularity), _num(b_item.popularity)
        if a_pop != b_pop:
            return b_pop - a_pop

        a_votes, b_votes = _num(a_item.vote_count), _num(b_item.vote_count)
        if a_votes != b_votes:
            return b_votes - a_votes

        a_avg, b_avg = _num(a_item.vote_average), _num(b_item.vote_average)
        if a_avg != b_avg:
            return b_avg - a_avg

        if a_item.has_collection and not b_item.has_collection:
            return -1
        if b_item.has_collection and not a_item.has_collection:
            return 1

    return b.score - a.score


def prioritize(scored_items: Iterable[ScoredItem], max_items: Optional[int] = None,
               config: Optional[CurationConfig] = None) -> List[ScoredItem]:
    """
    Order scored items and return the top max_items with ranks 1..N.

    Inputs are not mutated; ranked copies are returned. Both passes are
    stable sorts, so equal items keep their input order.
    """
    epsilon = (config or CurationConfig()).tie_epsilon
    by_score = sorted(scored_items, key=lambda s: s.score, reverse=True)
    ordered = sorted(by_score, key=cmp_to_key(lambda a, b: _tie_break(a, b, epsilon)))
    if max_items is not None:
        ordered = ordered[:max(0, max_items)]
    return [replace(s, rank=i) for i, s in enumerate(ordered, 1)]


def calculate_confidence(items: Iterable[ScoredItem],
                         config: Optional[CurationConfig] = None) -> int:
    """Batch quality as a percentage: 60% score, 40% vote volume"""
    config = config or CurationConfig()
    items = list(items)
    if not items:
        return 0
    avg_score = sum(s.score for s in items) / len(items)
    avg_votes = sum(_num(s.item.vote_count) for s in items) / len(items)

    score_confidence = min(avg_score / config.confidence_max_score, 1.0)
    vote_confidence = min(avg_votes / config.confidence_high_vote_count, 1.0)
    return int(math.floor((score_confidence * 0.6 + vote_confidence * 0.4) * 100 + 0.5))


def format_score_breakdown(scored: ScoredItem) -> str:
    b = scored.breakdown
    lines = [
        f"Total Score: {scored.score:.1f}",
        "",
        "Breakdown:",
        f"- Popularity: {b.popularity_score:.1f} pts",
        f"- Trending: {b.trending_score:.1f} pts",
        f"- Genre Match: {b.genre_score:.1f} pts",
        f"- Studio Bonus: {b.studio_bonus:.1f} pts",
        f"- Vote Count: {b.vote_count_penalty:.1f} pts",
        f"- Collection: {b.collection_bonus:.1f} pts",
        f"- Hype Factor: {b.hype_score:.1f} pts",
    ]
    return '\n'.join(lines)
