#!/usr/bin/env python3
"""
curate.py - Feed Curation Run

NEVER posts or schedules anything. Only reads the catalog and writes CSV.

Pipeline order:
1. [I/O] Discover candidates on TMDb for the feed type (or --candidates file)
2. [I/O] Enrich the first N candidates with detail payloads (bounded pool)
3. [RULES] Filter chain: region, popularity, genre, studio, images, title,
   trending, anniversary
4. [RULES] Score + tie-break ordering
5. [RULES] Deduplicate against existing posts (--posts) and within the batch
6. [OUTPUT] Manifest, dedup audit, filter report, statistics

Outputs (next to --output):
  curation_manifest.csv   ranked selection with score breakdown
  dedup_audit.csv         one row per dedup decision
  filter_report.csv       one row per candidate with its reason trail
"""

import sys
import csv
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from curation.catalog import CandidateItem, FeedType, RankHints, item_from_tmdb
from curation.config import CurationConfig, load_config
from curation.dedup import ExistingPost, dedup_stats, load_existing_posts
from curation.pipeline import CurationPipeline, CurationResult, STATUS_OK
from curation.scoring import format_score_breakdown
from curation.tmdb import TMDbClient

logger = logging.getLogger(__name__)


def load_candidates(path: Path) -> Tuple[List[CandidateItem], Dict[Tuple[int, str], RankHints]]:
    """
    Load raw TMDb payloads from a JSON file for offline runs.

    Entries may carry optional `trending_rank` / `upcoming_rank` fields,
    which become rank hints for that item.
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        raw = raw.get('results', [])

    items = []
    hints = {}
    for entry in raw:
        try:
            item = item_from_tmdb(entry)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping candidate record without usable id: {e}")
            continue
        items.append(item)
        if entry.get('trending_rank') or entry.get('upcoming_rank'):
            hints[item.key] = RankHints(
                trending_rank=entry.get('trending_rank'),
                upcoming_rank=entry.get('upcoming_rank'),
            )
    logger.info(f"Loaded {len(items)} candidates from {path}")
    return items, hints


def write_manifest(result: CurationResult, output_path: Path):
    """Write the ranked selection to a properly-quoted CSV manifest"""
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        fieldnames = [
            'rank', 'feed_type', 'catalog_id', 'media_type', 'title',
            'release_date', 'score',
            'popularity_score', 'trending_score', 'genre_score',
            'studio_bonus', 'vote_count_penalty', 'collection_bonus', 'hype_score',
            'popularity', 'vote_average', 'vote_count',
            'poster_path', 'backdrop_path',
        ]
        writer = csv.DictWriter(f, fieldnames=fieldnames, quoting=csv.QUOTE_ALL)
        writer.writeheader()

        for scored in result.items:
            item, b = scored.item, scored.breakdown
            writer.writerow({
                'rank': scored.rank,
                'feed_type': scored.feed_type.value,
                'catalog_id': item.catalog_id,
                'media_type': item.media_type,
                'title': item.title,
                'release_date': item.release_date or '',
                'score': round(scored.score, 2),
                'popularity_score': round(b.popularity_score, 2),
                'trending_score': round(b.trending_score, 2),
                'genre_score': b.genre_score,
                'studio_bonus': b.studio_bonus,
                'vote_count_penalty': b.vote_count_penalty,
                'collection_bonus': b.collection_bonus,
                'hype_score': b.hype_score,
                'popularity': item.popularity if item.popularity is not None else '',
                'vote_average': item.vote_average if item.vote_average is not None else '',
                'vote_count': item.vote_count if item.vote_count is not None else '',
                'poster_path': item.poster_path or '',
                'backdrop_path': item.backdrop_path or '',
            })

    logger.info(f"Wrote manifest ({len(result.items)} items) to {output_path}")


def write_dedup_audit(result: CurationResult, output_path: Path):
    """One row per dedup decision, for operator troubleshooting"""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fieldnames = [
        'catalog_id', 'media_type', 'title', 'score', 'kept', 'reason',
        'conflicting_source', 'conflicting_time',
    ]
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, quoting=csv.QUOTE_ALL)
        writer.writeheader()
        for decision in result.dedup_decisions:
            scored = decision.item
            post: Optional[ExistingPost] = decision.conflicting_post
            writer.writerow({
                'catalog_id': scored.item.catalog_id,
                'media_type': scored.item.media_type,
                'title': scored.item.title,
                'score': round(scored.score, 2),
                'kept': decision.kept,
                'reason': decision.reason,
                'conflicting_source': post.source if post else '',
                'conflicting_time': post.scheduled_time.isoformat() if post else '',
            })

    logger.info(f"Wrote dedup audit ({len(result.dedup_decisions)} decisions) to {output_path}")


def write_filter_report(result: CurationResult, output_path: Path):
    """One row per candidate: verdict, halting rule and full reason trail"""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fieldnames = [
        'catalog_id', 'media_type', 'title', 'passed', 'failed_rule', 'reason', 'trail',
    ]
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, quoting=csv.QUOTE_ALL)
        writer.writeheader()
        for item, outcome in result.filter_outcomes:
            writer.writerow({
                'catalog_id': item.catalog_id,
                'media_type': item.media_type,
                'title': item.title,
                'passed': outcome.passed,
                'failed_rule': outcome.failed_rule or '',
                'reason': outcome.reason,
                'trail': ' | '.join(outcome.reasons),
            })

    logger.info(f"Wrote filter report ({len(result.filter_outcomes)} candidates) to {output_path}")


def print_stats(result: CurationResult, client: Optional[TMDbClient] = None):
    """Print curation statistics"""
    fs = result.filter_stats

    print("\n" + "=" * 60)
    print(f"CURATION STATISTICS ({result.feed_type.value})")
    print("=" * 60)
    print(f"Status: {result.status}")
    if result.fetch_error:
        print(f"Fetch error: {result.fetch_error}")
    print(f"Candidates filtered: {fs.total}")
    print(f"  Passed: {fs.passed}")
    print(f"  Failed: {fs.failed}")
    if result.enrichment_failures:
        print(f"  Enrichment failures (kept with list data): {len(result.enrichment_failures)}")

    if fs.by_rule:
        print("\nFILTER REJECTIONS BY RULE:")
        for rule, count in sorted(fs.by_rule.items(), key=lambda x: -x[1]):
            print(f"  {rule:30s}: {count:4d}")

    if result.dedup_decisions:
        stats = dedup_stats(result.dedup_decisions)
        print(f"\nDEDUP: {stats['kept']} kept, {stats['removed']} removed")
        for reason, count in sorted(stats['removal_reasons'].items(), key=lambda x: -x[1]):
            print(f"  {reason[:50]:50s}: {count:4d}")

    print(f"\nSELECTED ({len(result.items)}):")
    for scored in result.items:
        print(f"  #{scored.rank} {scored.item.title} [{scored.item.media_type}] "
              f"score {scored.score:.1f}")
    if result.items:
        print("\nTop pick breakdown:")
        print(format_score_breakdown(result.items[0]))

    print(f"\nConfidence: {result.confidence}%")

    if client:
        cache_stats = client.get_cache_stats()
        print(f"\nTMDb: {cache_stats['misses']} detail queries, "
              f"{cache_stats['hits']} cache hits "
              f"({cache_stats['hit_rate']:.0f}% hit rate)")

    print("=" * 60)


def build_client(config: CurationConfig, no_api: bool) -> Optional[TMDbClient]:
    if no_api:
        logger.info("API access disabled (--no-api): offline curation")
        return None
    if not config.tmdb_api_key:
        logger.warning("TMDb API disabled (no API key in config)")
        return None
    logger.info("TMDb API enabled (with detail caching)")
    return TMDbClient(api_key=config.tmdb_api_key, cache_path=Path(config.cache_path))


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(
        description='Curate a ranked, de-duplicated feed selection',
        epilog="""
NEVER posts anything. Only reads the catalog and writes CSV.

Examples:
  python curate.py weekly
  python curate.py anniversary --posts output/existing_posts.json
  python curate.py today --no-api --candidates samples/today.json
  python curate.py monthly --max-items 10 --output output/monthly.csv
        """
    )
    parser.add_argument('feed_type', choices=[f.value for f in FeedType],
                        help='Feed type to curate')
    parser.add_argument('--config', type=Path, default=Path('config_external.yaml'),
                        help='Configuration file (default: config_external.yaml)')
    parser.add_argument('--posts', type=Path, default=None,
                        help='JSON export of existing scheduled/published posts')
    parser.add_argument('--candidates', type=Path, default=None,
                        help='JSON file of TMDb payloads (skips discovery)')
    parser.add_argument('--max-items', type=int, default=None,
                        help='Slots to fill (default: max_items from config)')
    parser.add_argument('--output', '-o', type=Path,
                        default=Path('output/curation_manifest.csv'),
                        help='Output CSV manifest path (default: output/curation_manifest.csv)')
    parser.add_argument('--no-api', action='store_true',
                        help='Disable TMDb access (requires --candidates)')

    args = parser.parse_args(argv)

    if not args.config.exists():
        logger.error(f"Config file not found: {args.config}")
        return 1

    if args.no_api and args.candidates is None:
        logger.error("--no-api needs --candidates: there is nothing to curate offline")
        return 1

    for path in (args.posts, args.candidates):
        if path is not None and not path.exists():
            logger.error(f"Input file not found: {path}")
            return 1

    try:
        config = load_config(args.config)
    except yaml.YAMLError as e:
        logger.error(f"Invalid config file {args.config}: {e}")
        return 1
    client = build_client(config, args.no_api)

    candidates, hints = None, None
    try:
        existing_posts = load_existing_posts(args.posts) if args.posts else []
        if args.candidates:
            candidates, hints = load_candidates(args.candidates)
            # no ranks in the file: live chart positions when a client exists
            hints = hints or None
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON input file: {e}")
        return 1

    pipeline = CurationPipeline(config, client=client)
    result = pipeline.run(
        args.feed_type,
        existing_posts=existing_posts,
        max_items=args.max_items,
        candidates=candidates,
        hints=hints,
    )

    write_manifest(result, args.output)
    write_dedup_audit(result, args.output.parent / 'dedup_audit.csv')
    write_filter_report(result, args.output.parent / 'filter_report.csv')

    print_stats(result, client)

    if result.status != STATUS_OK:
        logger.warning(f"Run finished without a selection: {result.status}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
