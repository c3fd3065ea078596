"""
Tests for rule parsing, the rule cache and rule storage.
"""
import json
import os
import sys
import threading

import pytest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


def safety_rule(name='Profanity', severity='high', patterns=('badword',), **cfg):
    return {
        'ruleId': f'rule-{name}',
        'name': name,
        'type': 'safety',
        'severity': severity,
        'isActive': True,
        'config': json.dumps({'patterns': list(patterns), **cfg}),
    }


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRuleParsing:
    """Tests for the typed rule configs."""

    def test_safety_patterns_are_case_insensitive(self):
        from shared.rules import SafetyRuleConfig, parse_rule

        rule = parse_rule(safety_rule(patterns=[r'bad\w+']))

        assert isinstance(rule.config, SafetyRuleConfig)
        assert rule.config.patterns[0].search('what a BADWORD')

    def test_substring_mode_escapes_patterns(self):
        from shared.rules import parse_rule

        rule = parse_rule(safety_rule(patterns=['a.b'], match='substring'))

        assert rule.config.patterns[0].search('axb') is None
        assert rule.config.patterns[0].search('A.B')

    def test_invalid_regex_is_dropped(self):
        from shared.rules import parse_rule

        rule = parse_rule(safety_rule(patterns=['(', 'ok']))

        assert len(rule.config.patterns) == 1

    def test_unknown_tier_rejected(self):
        from shared.rules import RuleConfigError, parse_rule

        with pytest.raises(RuleConfigError):
            parse_rule(safety_rule(tier='X-99'))

    def test_quality_config(self):
        from shared.rules import QualityRuleConfig, parse_rule

        rule = parse_rule({'name': 'Longer chapters', 'type': 'quality', 'config': '{"minWords": 50}'})

        assert isinstance(rule.config, QualityRuleConfig)
        assert rule.config.min_words == 50
        assert rule.config.max_chars is None

    def test_plagiarism_threshold_above_one_rejected(self):
        from shared.rules import RuleConfigError, parse_rule

        with pytest.raises(RuleConfigError):
            parse_rule({'name': 'p', 'type': 'plagiarism', 'config': {'failThreshold': 1.5}})

    def test_config_must_be_object(self):
        from shared.rules import RuleConfigError, load_config

        with pytest.raises(RuleConfigError):
            load_config('[1, 2]')
        with pytest.raises(RuleConfigError):
            load_config('{not json')

    def test_parse_rules_skips_bad_rows_and_sorts_by_name(self):
        from shared.rules import parse_rules

        rules = parse_rules([
            safety_rule('b'),
            {'name': 'broken', 'type': 'sentiment', 'config': '{}'},
            safety_rule('a'),
        ])

        assert [r.name for r in rules] == ['a', 'b']

    def test_severity_rank(self):
        from shared.rules import parse_rule

        assert parse_rule(safety_rule(severity='critical')).severity_rank > \
            parse_rule(safety_rule(severity='low')).severity_rank


class TestRuleCache:
    """Tests for generation-based invalidation and the TTL safety net."""

    def test_loads_lazily_and_once(self):
        from shared.rule_cache import RuleCache

        loader = MagicMock(return_value=[safety_rule()])
        cache = RuleCache(loader, ttl_seconds=60, clock=FakeClock())

        loader.assert_not_called()
        cache.get_active_rules()
        cache.get_active_rules('safety')

        assert loader.call_count == 1

    def test_invalidate_gives_read_your_writes(self):
        from shared.rule_cache import RuleCache

        stored = [safety_rule('a')]
        cache = RuleCache(lambda: list(stored), ttl_seconds=0)

        assert [r.name for r in cache.get_active_rules()] == ['a']

        stored.append(safety_rule('b'))
        assert [r.name for r in cache.get_active_rules()] == ['a']  # no TTL, still cached

        cache.invalidate()
        assert [r.name for r in cache.get_active_rules()] == ['a', 'b']

    def test_invalidate_bumps_generation(self):
        from shared.rule_cache import RuleCache

        cache = RuleCache(lambda: [], ttl_seconds=0)

        assert cache.generation == 0
        assert cache.invalidate() == 1
        assert cache.generation == 1

    def test_ttl_safety_net_reloads(self):
        from shared.rule_cache import RuleCache

        clock = FakeClock()
        loader = MagicMock(return_value=[])
        cache = RuleCache(loader, ttl_seconds=60, clock=clock)

        cache.get_active_rules()
        clock.now = 59
        cache.get_active_rules()
        assert loader.call_count == 1

        clock.now = 61
        cache.get_active_rules()
        assert loader.call_count == 2

    def test_filters_by_type(self):
        from shared.rule_cache import RuleCache

        cache = RuleCache(lambda: [
            safety_rule('a'),
            {'ruleId': 'q', 'name': 'q', 'type': 'quality', 'severity': 'low', 'config': '{}'},
        ], ttl_seconds=0)

        assert [r.name for r in cache.get_active_rules('safety')] == ['a']
        assert [r.name for r in cache.get_active_rules('quality')] == ['q']
        assert cache.get_active_rules('plagiarism') == ()

    def test_expired_snapshot_served_when_store_down(self):
        from shared.errors import PersistenceError
        from shared.rule_cache import RuleCache

        clock = FakeClock()
        loader = MagicMock(side_effect=[[safety_rule('a')], PersistenceError('down')])
        cache = RuleCache(loader, ttl_seconds=60, clock=clock)

        cache.get_active_rules()
        clock.now = 120

        assert [r.name for r in cache.get_active_rules()] == ['a']

    def test_store_failure_after_invalidate_propagates(self):
        from shared.errors import PersistenceError
        from shared.rule_cache import RuleCache

        loader = MagicMock(side_effect=[[safety_rule('a')], PersistenceError('down')])
        cache = RuleCache(loader, ttl_seconds=60, clock=FakeClock())

        cache.get_active_rules()
        cache.invalidate()

        with pytest.raises(PersistenceError):
            cache.get_active_rules()

    def test_invalidation_during_load_is_not_lost(self):
        from shared.rule_cache import RuleCache

        calls = []
        holder = {}

        def loader():
            calls.append(1)
            if len(calls) == 1:
                # A rule write lands while the first load is in flight
                holder['cache'].invalidate()
            return [safety_rule(f'v{len(calls)}')]

        cache = RuleCache(loader, ttl_seconds=0)
        holder['cache'] = cache

        assert cache.get_active_rules()[0].name == 'v1'
        assert cache.get_active_rules()[0].name == 'v2'

    def test_concurrent_readers_never_see_partial_rule_set(self):
        from shared.rule_cache import RuleCache

        versions = {'n': 0}

        def loader():
            versions['n'] += 1
            prefix = f"set{versions['n']}"
            return [safety_rule(f"{prefix}-{i}") for i in range(5)]

        cache = RuleCache(loader, ttl_seconds=0)
        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                rules = cache.get_active_rules()
                prefixes = {r.name.split('-')[0] for r in rules}
                if len(rules) != 5 or len(prefixes) != 1:
                    errors.append([r.name for r in rules])

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for _ in range(50):
            cache.invalidate()
        stop.set()
        for t in threads:
            t.join()

        assert errors == []


class TestRuleStore:
    """Tests for rule writes and their cache invalidation."""

    @patch('shared.rule_store.dynamo')
    def test_create_invalidates_cache(self, mock_dynamo):
        from shared.rule_store import save_rule

        mock_dynamo.query.return_value = []
        mock_dynamo.put_item.return_value = True
        cache = MagicMock()

        rule = save_rule({
            'name': 'Profanity',
            'type': 'safety',
            'severity': 'high',
            'config': {'patterns': ['badword']},
        }, cache)

        cache.invalidate.assert_called_once()
        assert rule['config'] == '{"patterns": ["badword"]}'
        assert rule['isActive'] is True
        assert rule['ruleId']

    @patch('shared.rule_store.dynamo')
    def test_duplicate_name_is_conflict(self, mock_dynamo):
        from shared.errors import ConflictError
        from shared.rule_store import save_rule

        mock_dynamo.query.return_value = [{'ruleId': 'other', 'name': 'Profanity'}]
        cache = MagicMock()

        with pytest.raises(ConflictError):
            save_rule({'name': 'Profanity', 'type': 'safety', 'config': '{}'}, cache)

        mock_dynamo.put_item.assert_not_called()
        cache.invalidate.assert_not_called()

    @patch('shared.rule_store.dynamo')
    def test_invalid_config_rejected(self, mock_dynamo):
        from shared.errors import ValidationError
        from shared.rule_store import save_rule

        mock_dynamo.query.return_value = []

        with pytest.raises(ValidationError):
            save_rule({'name': 'p', 'type': 'safety', 'config': '{"patterns": "badword"}'}, MagicMock())
        with pytest.raises(ValidationError):
            save_rule({'name': 'p', 'type': 'toxicity'}, MagicMock())
        with pytest.raises(ValidationError):
            save_rule({'name': 'p', 'type': 'safety', 'severity': 'extreme'}, MagicMock())

    @patch('shared.rule_store.dynamo')
    def test_update_keeps_created_at(self, mock_dynamo):
        from shared.rule_store import save_rule

        mock_dynamo.query.return_value = [{'ruleId': 'r1', 'name': 'Profanity'}]
        mock_dynamo.get_item.return_value = {'ruleId': 'r1', 'createdAt': '2024-01-01T00:00:00+00:00'}
        mock_dynamo.put_item.return_value = True
        cache = MagicMock()

        rule = save_rule({'ruleId': 'r1', 'name': 'Profanity', 'type': 'safety', 'isActive': False}, cache)

        assert rule['createdAt'] == '2024-01-01T00:00:00+00:00'
        assert rule['isActive'] is False
        cache.invalidate.assert_called_once()

    @patch('shared.rule_store.dynamo')
    def test_delete_missing_rule(self, mock_dynamo):
        from shared.errors import NotFoundError
        from shared.rule_store import delete_rule

        mock_dynamo.delete_item.return_value = False
        cache = MagicMock()

        with pytest.raises(NotFoundError):
            delete_rule('missing', cache)
        cache.invalidate.assert_not_called()

    @patch('shared.rule_store.dynamo')
    def test_rule_change_visible_to_next_validation(self, mock_dynamo):
        """A saved rule applies to the very next validation, with a long TTL in place."""
        from shared import rule_store
        from shared.rule_cache import RuleCache
        from shared.validation import ContentValidator, ValidationOptions

        stored = []
        mock_dynamo.scan.side_effect = lambda *args, **kwargs: list(stored)
        mock_dynamo.query.return_value = []
        mock_dynamo.put_item.side_effect = lambda table, item, condition_expression=None: stored.append(item) or True

        cache = RuleCache(rule_store.list_active, ttl_seconds=3600)
        validator = ContentValidator(cache, result_sink=MagicMock())
        options = ValidationOptions(check_quality=False, skip_persistence=True)

        assert validator.validate({'text': 'this is badword'}, options).passed is True

        rule_store.save_rule({
            'name': 'Profanity', 'type': 'safety', 'severity': 'high',
            'config': {'patterns': ['badword']},
        }, cache)

        result = validator.validate({'text': 'this is badword'}, options)
        assert result.passed is False
        assert 'Profanity' in result.flags
