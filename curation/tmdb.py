#!/usr/bin/env python3
"""
TMDb API client: discovery, detail enrichment and chart positions,
with persistent JSON caching of detail payloads
"""

import calendar
import json
import logging
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import requests

from curation.catalog import (
    CandidateItem, FeedType, MOVIE, RankHints, TV, ensure_utc, item_from_tmdb,
)
from curation.constants import ANNIVERSARY_YEARS

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 20


class CatalogError(Exception):
    """Transport or HTTP failure talking to the catalog source"""


def _same_day_years_ago(today: date, years: int) -> date:
    year = today.year - years
    day = min(today.day, calendar.monthrange(year, today.month)[1])
    return date(year, today.month, day)


def discovery_windows(feed_type: FeedType, today: date,
                      anniversary_years: Sequence[int] = ANNIVERSARY_YEARS) -> List[Tuple[date, date]]:
    """Release-date ranges queried for each feed type"""
    if feed_type is FeedType.TODAY:
        return [(today, today)]
    if feed_type is FeedType.WEEKLY:
        return [(today, today + timedelta(days=7))]
    if feed_type is FeedType.MONTHLY:
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        last_day = calendar.monthrange(year, month)[1]
        return [(date(year, month, 1), date(year, month, last_day))]
    windows = []
    for years in anniversary_years:
        day = _same_day_years_ago(today, years)
        windows.append((day, day))
    return windows


class TMDbClient:
    """Interface to The Movie Database API with persistent detail caching"""

    def __init__(self, api_key: str, cache_path: Path, timeout: int = 10):
        self.api_key = api_key
        self.base_url = "https://api.themoviedb.org/3"
        self.cache_path = cache_path
        self.timeout = timeout
        self.cache = self._load_cache()
        self.cache_hits = 0
        self.cache_misses = 0
        # enrichment calls get_details() from worker threads
        self._lock = threading.Lock()

    def _load_cache(self) -> Dict:
        """Load cache from JSON file"""
        if self.cache_path.exists():
            try:
                with open(self.cache_path, 'r', encoding='utf-8') as f:
                    cache = json.load(f)
                logger.info(f"Loaded TMDb cache with {len(cache)} entries")
                return cache
            except Exception as e:
                logger.warning(f"Could not load cache: {e}. Starting fresh.")
                return {}
        return {}

    def _save_cache(self):
        """Save cache to JSON file (caller holds the lock)"""
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self.cache_path, 'w', encoding='utf-8') as f:
                json.dump(self.cache, f, indent=2, ensure_ascii=False)

            logger.debug(f"Saved TMDb cache with {len(self.cache)} entries")
        except OSError as e:
            logger.error(f"Could not save cache: {e}")

    def _get(self, path: str, params: Optional[Dict] = None) -> Dict:
        """GET an API path; failures surface as CatalogError"""
        query = {'api_key': self.api_key}
        query.update(params or {})
        try:
            response = requests.get(f"{self.base_url}{path}", params=query, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            raise CatalogError(f"TMDb timeout for {path}") from e
        except requests.exceptions.HTTPError as e:
            raise CatalogError(f"TMDb HTTP error for {path}: {e}") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            raise CatalogError(f"TMDb request failed for {path}: {e}") from e

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _discover_range(self, start: date, end: date) -> List[CandidateItem]:
        movies = self._get('/discover/movie', {
            'region': 'US',
            'primary_release_date.gte': start.isoformat(),
            'primary_release_date.lte': end.isoformat(),
            'sort_by': 'popularity.desc',
            'page': 1,
        })
        shows = self._get('/discover/tv', {
            'first_air_date.gte': start.isoformat(),
            'first_air_date.lte': end.isoformat(),
            'sort_by': 'popularity.desc',
            'page': 1,
        })
        items = [item_from_tmdb(r, MOVIE) for r in movies.get('results') or []]
        items.extend(item_from_tmdb(r, TV) for r in shows.get('results') or [])
        return items

    def discover(self, feed_type, now: Optional[datetime] = None,
                 anniversary_years: Sequence[int] = ANNIVERSARY_YEARS) -> List[CandidateItem]:
        """
        Raw candidates for a feed type (movies first, then TV, by popularity).

        Anniversary discovery spans several years; a failed year is logged and
        skipped. Any other failure raises CatalogError.
        """
        feed_type = FeedType.parse(feed_type)
        today = ensure_utc(now).date()
        windows = discovery_windows(feed_type, today, anniversary_years)

        items: List[CandidateItem] = []
        for start, end in windows:
            if feed_type is not FeedType.ANNIVERSARY:
                items.extend(self._discover_range(start, end))
                continue
            try:
                items.extend(self._discover_range(start, end))
            except CatalogError as e:
                logger.warning(f"Failed to fetch anniversaries for {start}: {e}")

        logger.info(f"TMDb discover [{feed_type.value}]: {len(items)} candidates "
                    f"from {len(windows)} date window(s)")
        return items

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _make_cache_key(self, media_type: str, catalog_id: int) -> str:
        return f"{media_type}|{catalog_id}"

    def get_details(self, item: CandidateItem) -> Dict:
        """Detail payload for one item (with caching); raises CatalogError"""
        cache_key = self._make_cache_key(item.media_type, item.catalog_id)

        with self._lock:
            if cache_key in self.cache:
                self.cache_hits += 1
                logger.debug(f"Cache hit: {cache_key}")
                return self.cache[cache_key]
            self.cache_misses += 1

        logger.debug(f"Cache miss: {cache_key} - querying TMDb")
        details = self._get(f"/{item.media_type}/{item.catalog_id}")

        with self._lock:
            self.cache[cache_key] = details
            self._save_cache()
        return details

    # ------------------------------------------------------------------
    # Chart positions
    # ------------------------------------------------------------------

    def _chart_positions(self, path: str, pages: int, default_media_type: Optional[str],
                         params: Optional[Dict] = None) -> Dict[Tuple[int, str], int]:
        positions: Dict[Tuple[int, str], int] = {}
        for page in range(1, pages + 1):
            query = dict(params or {})
            query['page'] = page
            data = self._get(path, query)
            results = data.get('results') or []
            for index, entry in enumerate(results):
                media_type = entry.get('media_type', default_media_type)
                if media_type not in (MOVIE, TV) or entry.get('id') is None:
                    continue
                key = (int(entry['id']), media_type)
                positions.setdefault(key, (page - 1) * RESULTS_PER_PAGE + index + 1)
            if page >= (data.get('total_pages') or page):
                break
        return positions

    def get_rank_hints(self, trending_pages: int = 8,
                       upcoming_pages: int = 15) -> Dict[Tuple[int, str], RankHints]:
        """
        Trending (week) and upcoming (US movies) chart positions keyed by item key.

        A failed chart is logged and left out; items then fall back to the
        popularity rules in the filter chain.
        """
        trending: Dict[Tuple[int, str], int] = {}
        upcoming: Dict[Tuple[int, str], int] = {}
        try:
            trending = self._chart_positions('/trending/all/week', trending_pages, None)
        except CatalogError as e:
            logger.warning(f"Trending chart unavailable: {e}")
        try:
            upcoming = self._chart_positions('/movie/upcoming', upcoming_pages, MOVIE,
                                             {'region': 'US'})
        except CatalogError as e:
            logger.warning(f"Upcoming chart unavailable: {e}")

        hints = {}
        for key in set(trending) | set(upcoming):
            hints[key] = RankHints(trending_rank=trending.get(key),
                                   upcoming_rank=upcoming.get(key))
        logger.info(f"Rank hints: {len(trending)} trending, {len(upcoming)} upcoming")
        return hints

    def test_connection(self) -> Tuple[bool, str]:
        try:
            self._get('/configuration')
        except CatalogError as e:
            return False, str(e)
        return True, 'TMDb API connection successful'

    def get_cache_stats(self) -> Dict:
        """Get cache performance statistics"""
        total = self.cache_hits + self.cache_misses
        hit_rate = (self.cache_hits / total * 100) if total > 0 else 0

        return {
            'hits': self.cache_hits,
            'misses': self.cache_misses,
            'total_queries': total,
            'hit_rate': hit_rate,
            'cache_size': len(self.cache)
        }
