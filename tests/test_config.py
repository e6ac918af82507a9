#!/usr/bin/env python3
"""
Test suite for curation/config.py
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from curation import constants
from curation.catalog import FeedType, MovieItem
from curation.config import CurationConfig, config_from_dict, load_config
from curation.filters import FilterEngine


class TestDefaults:

    def test_defaults_come_from_constants(self):
        config = CurationConfig()
        assert config.max_items == constants.DEFAULT_MAX_ITEMS
        assert config.major_studios == constants.MAJOR_STUDIOS
        assert config.popularity_threshold(FeedType.MONTHLY) == 40.0
        assert config.popularity_weight('today') == 1.5

    def test_instances_do_not_share_tables(self):
        a, b = CurationConfig(), CurationConfig()
        a.major_studios.append('Tiny Barn')
        a.popularity_thresholds['weekly'] = 99.0
        assert 'Tiny Barn' not in b.major_studios
        assert b.popularity_threshold('weekly') == 25.0
        assert 'Tiny Barn' not in constants.MAJOR_STUDIOS

    def test_unknown_feed_falls_back(self):
        config = CurationConfig()
        assert config.popularity_threshold('hourly') == 0.0
        assert config.popularity_weight('hourly') == 1.0


class TestConfigFromDict:

    def test_empty_gives_defaults(self):
        assert config_from_dict(None) == CurationConfig()
        assert config_from_dict({}) == CurationConfig()

    def test_overrides_and_unknown_keys(self):
        config = config_from_dict({
            'max_items': 10,
            'major_studios': ['A24'],
            'not_a_setting': True,
            'enrichment_cap': None,
        })
        assert config.max_items == 10
        assert config.major_studios == ['A24']
        assert config.enrichment_cap == constants.ENRICHMENT_CAP
        assert not hasattr(config, 'not_a_setting')

    def test_scalar_for_list_setting_ignored(self):
        config = config_from_dict({'major_studios': 'Disney', 'rejected_keywords': 'parody'})
        assert config.major_studios == constants.MAJOR_STUDIOS
        assert config.rejected_keywords == constants.REJECTED_KEYWORDS

        engine = FilterEngine(config)
        assert engine.major_affiliation(MovieItem(catalog_id=1, title='A',
                                                  production_companies=('Sony',))) is None
        assert engine.is_eligible_title(MovieItem(catalog_id=2, title='Star Quest'))

    def test_list_for_dict_setting_ignored(self):
        config = config_from_dict({'popularity_thresholds': [10, 20]})
        assert config.popularity_threshold('weekly') == 25.0

    def test_scoring_knobs_configurable(self):
        config = config_from_dict({
            'tie_epsilon': 0.5,
            'recency_hype_feeds': ['today'],
            'confidence_max_score': 200,
        })
        assert config.tie_epsilon == 0.5
        assert config.recency_hype_feeds == ['today']
        assert config.confidence_max_score == 200

    def test_per_feed_overrides(self):
        config = config_from_dict({
            'feed_types': {
                'monthly': {'popularity_threshold': 45, 'bogus': 1},
                'weekly': {'popularity_weight': '1.4'},
            }
        })
        assert config.popularity_threshold('monthly') == 45.0
        assert config.popularity_weight('weekly') == 1.4
        assert config.popularity_threshold('weekly') == 25.0


class TestLoadConfig:

    def test_load_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(
            "tmdb_api_key: abc123\n"
            "dedup_window_days: 21\n"
            "feed_types:\n"
            "  anniversary:\n"
            "    popularity_threshold: 30\n",
            encoding='utf-8',
        )
        config = load_config(path)
        assert config.tmdb_api_key == 'abc123'
        assert config.dedup_window_days == 21
        assert config.popularity_threshold('anniversary') == 30.0

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('', encoding='utf-8')
        assert load_config(path) == CurationConfig()

    def test_example_config_loads(self):
        example = Path(__file__).parent.parent / 'config_example.yaml'
        config = load_config(example)
        assert config.max_items == 5
        assert config.popularity_weight('today') == 1.5
