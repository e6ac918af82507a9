#!/usr/bin/env python3
"""
Catalog item projection

Movies and TV shows arrive from TMDb with different field names and a few
type-specific fields. Both are parsed into frozen dataclasses that share one
read-only shape (CandidateItem), so filter and scoring code is written once
against the common fields and the small set of projection properties below.
"""

import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import ClassVar, Dict, Iterable, Optional, Tuple


class FeedType(str, Enum):
    """Scheduling category; drives every threshold and window"""
    TODAY = 'today'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    ANNIVERSARY = 'anniversary'

    @property
    def source(self) -> str:
        """Post source tag used by the scheduler (tmdb_today, ...)"""
        return f'tmdb_{self.value}'

    @classmethod
    def parse(cls, value) -> 'FeedType':
        """Accept a FeedType, 'weekly' or 'tmdb_weekly'"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text.startswith('tmdb_'):
            text = text[len('tmdb_'):]
        return cls(text)


MOVIE = 'movie'
TV = 'tv'
MEDIA_TYPES = (MOVIE, TV)


def ensure_utc(now: Optional[datetime] = None) -> datetime:
    """Current time in UTC; naive datetimes are taken to be UTC already"""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def parse_date(value) -> Optional[date]:
    """Parse a TMDb 'YYYY-MM-DD' date; empty or malformed values give None"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class RankHints:
    """Optional positions in the trending / upcoming charts (1-based)"""
    trending_rank: Optional[int] = None
    upcoming_rank: Optional[int] = None

    @property
    def empty(self) -> bool:
        return not self.trending_rank and not self.upcoming_rank


NO_HINTS = RankHints()


@dataclass(frozen=True)
class CandidateItem:
    """Fields every filter and scoring rule reads"""
    catalog_id: int
    title: str
    original_title: Optional[str] = None
    release_date: Optional[str] = None
    popularity: Optional[float] = None
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    genre_ids: Tuple[int, ...] = ()
    production_countries: Tuple[str, ...] = ()
    origin_country: Tuple[str, ...] = ()
    production_companies: Tuple[str, ...] = ()
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    overview: str = ''

    media_type: ClassVar[str] = ''

    @property
    def key(self) -> Tuple[int, str]:
        return (self.catalog_id, self.media_type)

    @property
    def release_day(self) -> Optional[date]:
        return parse_date(self.release_date)

    def released_on(self, now: Optional[datetime] = None) -> bool:
        """True when the release/air date is on or before now"""
        day = self.release_day
        if day is None:
            return False
        return day <= ensure_utc(now).date()

    def days_until_release(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole days from now to release (negative once released), floored"""
        day = self.release_day
        if day is None:
            return None
        release_at = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        delta = release_at - ensure_utc(now)
        return math.floor(delta.total_seconds() / 86400)

    @property
    def affiliations(self) -> Tuple[str, ...]:
        """Studio / network names matched against the allow-lists"""
        return self.production_companies

    @property
    def has_collection(self) -> bool:
        return False

    @property
    def is_direct_to_video(self) -> bool:
        return False

    @property
    def runtime_minutes(self) -> Optional[int]:
        return None

    @property
    def episode_count(self) -> Optional[int]:
        return None

    @property
    def show_type(self) -> Optional[str]:
        return None

    @property
    def production_budget(self) -> Optional[int]:
        return None


@dataclass(frozen=True)
class MovieItem(CandidateItem):
    runtime: Optional[int] = None
    video: bool = False
    budget: Optional[int] = None
    revenue: Optional[int] = None
    collection: Optional[str] = None

    media_type: ClassVar[str] = MOVIE

    @property
    def has_collection(self) -> bool:
        return bool(self.collection)

    @property
    def is_direct_to_video(self) -> bool:
        return bool(self.video)

    @property
    def runtime_minutes(self) -> Optional[int]:
        return self.runtime

    @property
    def production_budget(self) -> Optional[int]:
        return self.budget


@dataclass(frozen=True)
class TVShowItem(CandidateItem):
    networks: Tuple[str, ...] = ()
    type: Optional[str] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None

    media_type: ClassVar[str] = TV

    @property
    def affiliations(self) -> Tuple[str, ...]:
        return self.production_companies + self.networks

    @property
    def episode_count(self) -> Optional[int]:
        return self.number_of_episodes

    @property
    def show_type(self) -> Optional[str]:
        return self.type


# ---------------------------------------------------------------------------
# TMDb payload parsing
# ---------------------------------------------------------------------------

def _names(entries: Optional[Iterable]) -> Tuple[str, ...]:
    """[{'name': 'HBO'}, ...] -> ('HBO', ...); plain strings pass through"""
    names = []
    for entry in entries or []:
        name = entry.get('name') if isinstance(entry, dict) else entry
        if name:
            names.append(str(name))
    return tuple(names)


def _country_codes(entries: Optional[Iterable]) -> Tuple[str, ...]:
    codes = []
    for entry in entries or []:
        code = entry.get('iso_3166_1') if isinstance(entry, dict) else entry
        if code and code not in codes:
            codes.append(str(code))
    return tuple(codes)


def _genre_ids(payload: Dict) -> Tuple[int, ...]:
    if payload.get('genre_ids'):
        return tuple(int(g) for g in payload['genre_ids'])
    # detail payloads carry [{'id': 28, 'name': 'Action'}]
    return tuple(int(g['id']) for g in payload.get('genres') or [] if g.get('id') is not None)


def _collection_name(value) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, dict):
        return value.get('name') or str(value.get('id', '')) or None
    return str(value)


def detect_media_type(payload: Dict) -> str:
    media_type = payload.get('media_type')
    if media_type in MEDIA_TYPES:
        return media_type
    return MOVIE if 'title' in payload or 'release_date' in payload else TV


def item_from_tmdb(payload: Dict, media_type: Optional[str] = None) -> CandidateItem:
    """
    Build a MovieItem or TVShowItem from a raw TMDb list or detail payload.

    Missing fields stay None / empty; nothing here raises for absent data.
    """
    media_type = media_type or detect_media_type(payload)
    common = dict(
        catalog_id=int(payload['id']),
        popularity=payload.get('popularity'),
        vote_average=payload.get('vote_average'),
        vote_count=payload.get('vote_count'),
        genre_ids=_genre_ids(payload),
        production_countries=_country_codes(payload.get('production_countries')),
        origin_country=_country_codes(payload.get('origin_country')),
        production_companies=_names(payload.get('production_companies')),
        poster_path=payload.get('poster_path') or None,
        backdrop_path=payload.get('backdrop_path') or None,
        overview=payload.get('overview') or '',
    )

    if media_type == MOVIE:
        return MovieItem(
            title=payload.get('title') or payload.get('original_title') or '',
            original_title=payload.get('original_title'),
            release_date=payload.get('release_date') or None,
            runtime=payload.get('runtime'),
            video=bool(payload.get('video', False)),
            budget=payload.get('budget'),
            revenue=payload.get('revenue'),
            collection=_collection_name(payload.get('belongs_to_collection')),
            **common,
        )

    return TVShowItem(
        title=payload.get('name') or payload.get('original_name') or '',
        original_title=payload.get('original_name'),
        release_date=payload.get('first_air_date') or None,
        networks=_names(payload.get('networks')),
        type=payload.get('type'),
        number_of_seasons=payload.get('number_of_seasons'),
        number_of_episodes=payload.get('number_of_episodes'),
        **common,
    )


# Detail-only fields layered onto a list item during enrichment
_DETAIL_FIELDS = {
    'production_countries': ('production_countries', _country_codes),
    'production_companies': ('production_companies', _names),
    'origin_country': ('origin_country', _country_codes),
}
_MOVIE_DETAIL_FIELDS = {
    'belongs_to_collection': ('collection', _collection_name),
    'budget': ('budget', None),
    'revenue': ('revenue', None),
    'runtime': ('runtime', None),
}
_TV_DETAIL_FIELDS = {
    'networks': ('networks', _names),
    'number_of_seasons': ('number_of_seasons', None),
    'number_of_episodes': ('number_of_episodes', None),
    'type': ('type', None),
}


def merge_details(item: CandidateItem, details: Optional[Dict]) -> CandidateItem:
    """
    Return a copy of item with detail-payload fields applied.

    Only keys present (and not null) in the detail payload replace the list
    values, so a partial payload never erases data the list call provided.
    """
    if not details:
        return item

    mapping = dict(_DETAIL_FIELDS)
    mapping.update(_MOVIE_DETAIL_FIELDS if item.media_type == MOVIE else _TV_DETAIL_FIELDS)

    changes = {}
    for payload_key, (attr, convert) in mapping.items():
        if details.get(payload_key) is None:
            continue
        value = details[payload_key]
        changes[attr] = convert(value) if convert else value

    return replace(item, **changes) if changes else item
