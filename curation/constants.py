#!/usr/bin/env python3
"""
Shared constants for feed curation

Single source of truth for genre tables, studio allow-lists, blacklisted
keywords and per-feed thresholds. These are DEFAULTS only: CurationConfig
copies them and a YAML config can replace any of them.
DO NOT duplicate these lists in other modules - import from here instead.
"""

# TMDb genre IDs (as of 2024): movie and TV share one id space
GENRE_NAMES = {
    28: 'Action',
    12: 'Adventure',
    16: 'Animation',
    35: 'Comedy',
    80: 'Crime',
    99: 'Documentary',
    18: 'Drama',
    10751: 'Family',
    14: 'Fantasy',
    36: 'History',
    27: 'Horror',
    10402: 'Music',
    9648: 'Mystery',
    10749: 'Romance',
    878: 'Science Fiction',
    10770: 'TV Movie',
    53: 'Thriller',
    10752: 'War',
    37: 'Western',
    # TV
    10759: 'Action & Adventure',
    10762: 'Kids',
    10763: 'News',
    10764: 'Reality',
    10765: 'Sci-Fi & Fantasy',
    10766: 'Soap',
    10767: 'Talk',
    10768: 'War & Politics',
}

APPROVED_GENRE_IDS = [
    # Movies
    28, 12, 16, 35, 18, 10751, 14, 27, 9648, 10749, 878, 53,
    # TV (soap/talk excluded, those shows are caught by the type check too)
    10759, 10762, 10765, 10768,
]

REJECTED_GENRE_IDS = [
    99,     # Documentary
    37,     # Western
    36,     # History
    10752,  # War (standalone)
    10402,  # Music
    10770,  # TV Movie
]

# Action, Animation, Sci-Fi, Horror, Fantasy
HIGH_DEMAND_GENRE_IDS = [28, 16, 878, 27, 14]

REJECTED_TV_TYPES = [
    'Reality',
    'Talk Show',
    'News',
    'Documentary',
    'Miniseries',
    'Scripted',  # unvetted scripted entries are held back for manual review
]

# Substring match, case-insensitive, against production companies and networks
MAJOR_STUDIOS = [
    'Warner Bros',
    'Walt Disney',
    'Disney',
    'Marvel Studios',
    'Marvel',
    'DC Entertainment',
    'DC Films',
    'Universal Pictures',
    'Paramount Pictures',
    'Paramount',
    'Netflix',
    'Amazon Studios',
    'Amazon',
    'Prime Video',
    'HBO',
    'HBO Max',
    'Apple TV+',
    'Apple',
    'Hulu',
    'Sony Pictures',
    'Columbia Pictures',
    '20th Century Studios',
    '20th Century Fox',
    'Lionsgate',
    'MGM',
    'DreamWorks',
    'Pixar',
    'Lucasfilm',
    'A24',  # quality indie exception
    'Searchlight',
    'Focus Features',
    'New Line Cinema',
    'Legendary',
    'Blumhouse',
]

# Extra studio bonus; matched case-sensitively against production companies only
TOP_TIER_STUDIOS = ['Marvel', 'Disney', 'Warner Bros', 'Universal', 'Pixar']

# Substring match against lowercased "title overview"
REJECTED_KEYWORDS = [
    'documentary',
    'docuseries',
    'behind the scenes',
    'making of',
    'indie',
    'festival',
    'student film',
    'short film',
    'stage recording',
    'broadway',
    'live recording',
    'concert',
    'stand-up',
    'sports',
    'wrestling',
    'ufc',
    'nba',
    'nfl',
    'reality',
    'competition',
    'gameshow',
    'game show',
    'cooking show',
    'talent show',
    'dating show',
    'telenovela',
    'soap opera',
    'direct-to-video',
    'straight to video',
    'fan film',
    'fan-made',
    'unofficial',
    'parody',
]

# Minimum popularity by feed type (Filter rule 2)
POPULARITY_THRESHOLDS = {
    'today': 25.0,
    'weekly': 25.0,
    'monthly': 40.0,
    'anniversary': 25.0,
}

# Released titles need this many votes (unreleased titles skip the check)
RELEASED_MIN_VOTE_COUNT = 300

# Non-major, non-franchise titles need this popularity (Filter rule 4)
STUDIO_GATE_MIN_POPULARITY = 50.0

MIN_MOVIE_RUNTIME = 60    # minutes
MIN_TV_EPISODES = 3

# Trending confirmation (Filter rule 7)
TRENDING_RANK_LIMIT = 150
UPCOMING_RANK_LIMIT = 250
MONTHLY_UPCOMING_RANK_LIMIT = 300
TRENDING_FALLBACK_POPULARITY = 50.0
MONTHLY_FALLBACK_POPULARITY = 60.0

# Anniversary callouts (Filter rules 7-8)
ANNIVERSARY_MIN_VOTE_COUNT = 1000
ANNIVERSARY_MIN_VOTE_AVERAGE = 6.5
ANNIVERSARY_MIN_BUDGET = 10_000_000

# Scoring
POPULARITY_WEIGHTS = {
    'today': 1.5,
    'weekly': 1.2,
    'monthly': 1.0,
    'anniversary': 1.0,
}
RECENCY_HYPE_FEEDS = ['today', 'weekly']
RECENCY_HYPE_DAYS = 7
TIE_EPSILON = 0.1
CONFIDENCE_MAX_SCORE = 300.0
CONFIDENCE_HIGH_VOTE_COUNT = 5000.0

# Deduplication
DEDUP_WINDOW_DAYS = 30
ANNIVERSARY_CROSS_WINDOW_DAYS = 60
POST_RETENTION_DAYS = 90

# Orchestrator
DEFAULT_MAX_ITEMS = 5
ENRICHMENT_CAP = 50          # raw candidates enriched per run (rate-limit budget)
ENRICHMENT_WORKERS = 8

# Years looked back for anniversary discovery
ANNIVERSARY_YEARS = [1, 2, 3, 5, 10, 15, 20, 25]
