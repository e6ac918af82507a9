#!/usr/bin/env python3
"""
Curation pipeline: fetch, enrich, filter, score, dedup, ranked output

Only this module touches the catalog source. Enrichment runs on a bounded
thread pool over the first `enrichment_cap` candidates; a failed lookup keeps
the item with its list data. Everything after enrichment is pure.

Result status distinguishes an empty fetch from an empty selection:
  no_candidates   fetch failed or returned nothing
  all_filtered    candidates fetched, none passed the filter chain
  all_duplicates  some passed, every one blocked by deduplication
  ok              at least one item selected
"""

import concurrent.futures
import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from curation.catalog import (
    CandidateItem, FeedType, NO_HINTS, RankHints, ensure_utc, merge_details,
)
from curation.config import CurationConfig
from curation.dedup import DedupDecision, DedupEngine, ExistingPost
from curation.filters import FilterEngine, FilterOutcome, FilterStats
from curation.scoring import ScoredItem, ScoringEngine, calculate_confidence, prioritize
from curation.tmdb import CatalogError

logger = logging.getLogger(__name__)

STATUS_OK = 'ok'
STATUS_NO_CANDIDATES = 'no_candidates'
STATUS_ALL_FILTERED = 'all_filtered'
STATUS_ALL_DUPLICATES = 'all_duplicates'


@dataclass
class CurationResult:
    """Everything one run decided, for the manifest, audit and review queue"""
    feed_type: FeedType
    status: str
    items: List[ScoredItem] = field(default_factory=list)
    filter_outcomes: List[Tuple[CandidateItem, FilterOutcome]] = field(default_factory=list)
    filter_stats: FilterStats = field(default_factory=FilterStats)
    dedup_decisions: List[DedupDecision] = field(default_factory=list)
    confidence: int = 0
    enrichment_failures: List[Tuple[int, str]] = field(default_factory=list)
    fetch_error: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not self.items


class CurationPipeline:
    """Sequence the engines for one feed type per run"""

    def __init__(self, config: Optional[CurationConfig] = None, client=None,
                 max_workers: Optional[int] = None):
        self.config = config or CurationConfig()
        self.client = client
        self.max_workers = max_workers or self.config.enrichment_workers
        self.filter_engine = FilterEngine(self.config)
        self.scoring_engine = ScoringEngine(self.config, self.filter_engine)
        self.dedup_engine = DedupEngine(self.config)
        self.stats = defaultdict(int)

    # ------------------------------------------------------------------
    # I/O stages
    # ------------------------------------------------------------------

    def fetch(self, feed_type: FeedType, now: Optional[datetime] = None) -> List[CandidateItem]:
        """Discover raw candidates; raises CatalogError when the source is unusable"""
        if self.client is None:
            raise CatalogError('No catalog client configured')
        return self.client.discover(feed_type, now=now,
                                    anniversary_years=self.config.anniversary_years)

    def enrich(self, items: Sequence[CandidateItem]) -> Tuple[List[CandidateItem], List[Tuple[int, str]]]:
        """
        Layer detail payloads onto items, preserving input order.

        Returns (items, failed_keys). A failed item is returned unchanged.
        """
        if self.client is None or not items:
            return list(items), []

        enriched: List[CandidateItem] = list(items)
        failures: List[Tuple[int, str]] = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_index = {
                executor.submit(self.client.get_details, item): index
                for index, item in enumerate(items)
            }
            for future in concurrent.futures.as_completed(future_to_index):
                index = future_to_index[future]
                item = items[index]
                try:
                    enriched[index] = merge_details(item, future.result())
                    self.stats['enriched'] += 1
                except CatalogError as e:
                    logger.warning(f"Failed to enrich {item.key} '{item.title}': {e}, using list data")
                    failures.append(item.key)
                    self.stats['enrichment_failed'] += 1
                except Exception as e:
                    logger.error(f"Error enriching {item.key} '{item.title}': {e}, using list data")
                    failures.append(item.key)
                    self.stats['enrichment_failed'] += 1

        return enriched, failures

    def fetch_rank_hints(self) -> Dict[Tuple[int, str], RankHints]:
        if self.client is None:
            return {}
        return self.client.get_rank_hints()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, feed_type, existing_posts: Iterable[ExistingPost] = (),
            max_items: Optional[int] = None,
            candidates: Optional[Sequence[CandidateItem]] = None,
            hints: Optional[Dict[Tuple[int, str], RankHints]] = None,
            now: Optional[datetime] = None) -> CurationResult:
        """
        Curate one batch.

        `candidates` bypasses discovery (offline runs, tests); `hints` bypasses
        the chart lookups. Enrichment still runs when a client is configured.
        """
        feed_type = FeedType.parse(feed_type)
        now = ensure_utc(now)
        max_items = self.config.max_items if max_items is None else max_items
        existing_posts = list(existing_posts)

        # === Stage 1: fetch ===
        fetch_error = None
        if candidates is None:
            try:
                candidates = self.fetch(feed_type, now)
            except CatalogError as e:
                logger.error(f"Candidate fetch failed [{feed_type.value}]: {e}")
                fetch_error = str(e)
                candidates = []
        candidates = list(candidates)

        if not candidates:
            self.stats[STATUS_NO_CANDIDATES] += 1
            logger.warning(f"No candidates fetched for {feed_type.value}, nothing to curate")
            return CurationResult(feed_type=feed_type, status=STATUS_NO_CANDIDATES,
                                  fetch_error=fetch_error)

        # === Stage 2: enrichment (capped) ===
        cap = self.config.enrichment_cap
        if len(candidates) > cap:
            logger.info(f"Enrichment cap: keeping first {cap} of {len(candidates)} candidates")
            self.stats['over_enrichment_cap'] += len(candidates) - cap
            candidates = candidates[:cap]
        candidates, failures = self.enrich(candidates)

        if hints is None:
            hints = self.fetch_rank_hints()

        # === Stage 3: filter ===
        filter_stats = FilterStats()
        outcomes: List[Tuple[CandidateItem, FilterOutcome]] = []
        for item in candidates:
            outcome = self.filter_engine.filter(item, feed_type, hints.get(item.key), now)
            filter_stats.record(outcome)
            outcomes.append((item, outcome))
        passed = [item for item, outcome in outcomes if outcome.passed]
        self.stats['filter_passed'] += len(passed)
        self.stats['filter_failed'] += len(outcomes) - len(passed)
        logger.info(f"Filter [{feed_type.value}]: {len(passed)}/{len(outcomes)} passed")

        result = CurationResult(
            feed_type=feed_type,
            status=STATUS_ALL_FILTERED,
            filter_outcomes=outcomes,
            filter_stats=filter_stats,
            enrichment_failures=failures,
        )
        if not passed:
            self.stats[STATUS_ALL_FILTERED] += 1
            logger.warning(f"All {len(outcomes)} candidates filtered out for {feed_type.value}")
            return result

        # === Stage 4: score and order ===
        scored = [
            self.scoring_engine.score(item, feed_type, hints.get(item.key, NO_HINTS), now)
            for item in passed
        ]
        ordered = prioritize(scored, config=self.config)

        # === Stage 5: dedup in priority order, then fill slots ===
        decisions = self.dedup_engine.deduplicate(ordered, existing_posts, now=now, seen=set())
        kept = [d.item for d in decisions if d.kept][:max(0, max_items)]
        result.dedup_decisions = decisions
        result.items = [replace(s, rank=i) for i, s in enumerate(kept, 1)]
        result.confidence = calculate_confidence(result.items, self.config)
        self.stats['dedup_removed'] += sum(1 for d in decisions if not d.kept)

        if result.items:
            result.status = STATUS_OK
        else:
            result.status = STATUS_ALL_DUPLICATES
            logger.warning(f"Every passing candidate was a recent duplicate for {feed_type.value}")
        self.stats[result.status] += 1

        logger.info(f"Selected {len(result.items)} item(s) for {feed_type.value} "
                    f"(confidence {result.confidence}%)")
        return result
