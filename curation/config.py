#!/usr/bin/env python3
"""
Curation configuration

Every threshold, allow-list and window used by the rule engines lives on
CurationConfig so the same engines run with different tables. Defaults are
taken from curation.constants; load_config() overlays a YAML file.

YAML format (all keys optional):
  tmdb_api_key: "..."
  max_items: 5
  enrichment_cap: 50
  major_studios: [Warner Bros, Disney, ...]   # replaces the default list
  feed_types:
    monthly:
      popularity_threshold: 45
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from curation import constants

logger = logging.getLogger(__name__)


@dataclass
class CurationConfig:
    """Injected tables and thresholds for filter, scoring and dedup"""
    popularity_thresholds: Dict[str, float] = field(
        default_factory=lambda: dict(constants.POPULARITY_THRESHOLDS))
    popularity_weights: Dict[str, float] = field(
        default_factory=lambda: dict(constants.POPULARITY_WEIGHTS))
    released_min_vote_count: int = constants.RELEASED_MIN_VOTE_COUNT
    approved_genre_ids: List[int] = field(
        default_factory=lambda: list(constants.APPROVED_GENRE_IDS))
    rejected_genre_ids: List[int] = field(
        default_factory=lambda: list(constants.REJECTED_GENRE_IDS))
    high_demand_genre_ids: List[int] = field(
        default_factory=lambda: list(constants.HIGH_DEMAND_GENRE_IDS))
    rejected_tv_types: List[str] = field(
        default_factory=lambda: list(constants.REJECTED_TV_TYPES))
    major_studios: List[str] = field(
        default_factory=lambda: list(constants.MAJOR_STUDIOS))
    top_tier_studios: List[str] = field(
        default_factory=lambda: list(constants.TOP_TIER_STUDIOS))
    rejected_keywords: List[str] = field(
        default_factory=lambda: list(constants.REJECTED_KEYWORDS))
    studio_gate_min_popularity: float = constants.STUDIO_GATE_MIN_POPULARITY
    min_movie_runtime: int = constants.MIN_MOVIE_RUNTIME
    min_tv_episodes: int = constants.MIN_TV_EPISODES
    trending_rank_limit: int = constants.TRENDING_RANK_LIMIT
    upcoming_rank_limit: int = constants.UPCOMING_RANK_LIMIT
    monthly_upcoming_rank_limit: int = constants.MONTHLY_UPCOMING_RANK_LIMIT
    trending_fallback_popularity: float = constants.TRENDING_FALLBACK_POPULARITY
    monthly_fallback_popularity: float = constants.MONTHLY_FALLBACK_POPULARITY
    anniversary_min_vote_count: int = constants.ANNIVERSARY_MIN_VOTE_COUNT
    anniversary_min_vote_average: float = constants.ANNIVERSARY_MIN_VOTE_AVERAGE
    anniversary_min_budget: int = constants.ANNIVERSARY_MIN_BUDGET
    recency_hype_days: int = constants.RECENCY_HYPE_DAYS
    recency_hype_feeds: List[str] = field(
        default_factory=lambda: list(constants.RECENCY_HYPE_FEEDS))
    tie_epsilon: float = constants.TIE_EPSILON
    confidence_max_score: float = constants.CONFIDENCE_MAX_SCORE
    confidence_high_vote_count: float = constants.CONFIDENCE_HIGH_VOTE_COUNT
    dedup_window_days: int = constants.DEDUP_WINDOW_DAYS
    anniversary_cross_window_days: int = constants.ANNIVERSARY_CROSS_WINDOW_DAYS
    max_items: int = constants.DEFAULT_MAX_ITEMS
    enrichment_cap: int = constants.ENRICHMENT_CAP
    enrichment_workers: int = constants.ENRICHMENT_WORKERS
    anniversary_years: List[int] = field(
        default_factory=lambda: list(constants.ANNIVERSARY_YEARS))
    tmdb_api_key: Optional[str] = None
    cache_path: str = 'output/tmdb_details_cache.json'

    def popularity_threshold(self, feed_type) -> float:
        return self.popularity_thresholds.get(_feed_key(feed_type), 0.0)

    def popularity_weight(self, feed_type) -> float:
        return self.popularity_weights.get(_feed_key(feed_type), 1.0)


def _feed_key(feed_type) -> str:
    return getattr(feed_type, 'value', feed_type)


# Per-feed keys accepted under `feed_types:` and the dict they land in
_PER_FEED_KEYS = {
    'popularity_threshold': 'popularity_thresholds',
    'popularity_weight': 'popularity_weights',
}


def config_from_dict(raw: Optional[dict]) -> CurationConfig:
    """Build a CurationConfig from a parsed YAML mapping"""
    config = CurationConfig()
    if not raw:
        return config

    known = {f.name for f in fields(CurationConfig)}
    for key, value in raw.items():
        if key == 'feed_types':
            continue
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        if value is None:
            continue
        # `major_studios: Disney` would otherwise be matched letter by letter
        expected = type(getattr(config, key))
        if expected in (list, dict) and not isinstance(value, expected):
            logger.warning(f"Ignoring config key {key}: expected a {expected.__name__}, "
                           f"got {type(value).__name__}")
            continue
        setattr(config, key, value)

    for feed_name, overrides in (raw.get('feed_types') or {}).items():
        for key, value in (overrides or {}).items():
            target = _PER_FEED_KEYS.get(key)
            if target is None:
                logger.warning(f"Ignoring unknown per-feed key: {feed_name}.{key}")
                continue
            getattr(config, target)[feed_name] = float(value)

    return config


def load_config(config_path: Path) -> CurationConfig:
    """Load configuration from YAML file"""
    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f)
    config = config_from_dict(raw)
    logger.debug(f"Loaded curation config from {config_path}")
    return config
