"""
Tests for the content validation engine.
"""
import json
import os
import sys
from decimal import Decimal

import pytest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Twenty-one distinct words: long enough and not repetitive
CLEAN_TEXT = (
    'Mara climbed seventeen winding stairs every evening, lit each brass lamp '
    'carefully, then watched distant ships drift toward quiet harbor waters.'
)


def rule(name, rule_type='safety', severity='high', **cfg):
    return {
        'ruleId': f'rule-{name}',
        'name': name,
        'type': rule_type,
        'severity': severity,
        'isActive': True,
        'config': json.dumps(cfg),
    }


def make_validator(rules=(), similarity=None, duplicate=None, image=None, sink=None):
    from shared.rule_cache import RuleCache
    from shared.validation import ContentValidator

    cache = RuleCache(lambda: list(rules), ttl_seconds=0)
    return ContentValidator(
        cache,
        similarity_checker=similarity or MagicMock(
            return_value={'isDuplicate': False, 'matches': [], 'maxSimilarity': 0.1}),
        duplicate_checker=duplicate or MagicMock(
            return_value={'isDuplicate': False, 'contentHash': 'h', 'matches': []}),
        image_checker=image or MagicMock(return_value={'passed': True, 'score': 1.0, 'flags': []}),
        result_sink=sink or MagicMock(),
    )


def safety_only(**kwargs):
    from shared.validation import ValidationOptions
    return ValidationOptions(check_quality=False, **kwargs)


class TestSafetyCheck:
    """Tests for safety rules and maturity rating suggestions."""

    def test_blocking_rule_fails_with_rule_flag(self):
        from shared.validation import ValidationOptions

        validator = make_validator([rule('Profanity', severity='high', patterns=['badword'])])

        result = validator.validate({'text': 'this is badword'}, ValidationOptions(check_safety=True))

        assert result.passed is False
        assert 'Profanity' in result.flags

    def test_critical_rule_also_blocks(self):
        validator = make_validator([rule('Slurs', severity='critical', patterns=['badword'])])

        result = validator.validate({'text': 'this is BADWORD'}, safety_only())

        assert result.passed is False
        assert result.flags == ('Slurs',)
        assert result.suggested_rating == 'NC-17'

    def test_lower_severity_match_is_advisory(self):
        validator = make_validator([rule('Mild', severity='medium', patterns=['darn'])])

        result = validator.validate({'text': 'darn it all'}, safety_only())

        assert result.passed is True
        assert result.flags == ()
        assert result.suggested_rating == 'PG-13'
        assert result.details['checks']['safety']['advisory'] == [{'rule': 'Mild', 'severity': 'medium'}]

    def test_rule_tier_overrides_severity_rating(self):
        validator = make_validator([rule('Violence', severity='low', patterns=['sword'], tier='R')])

        result = validator.validate({'text': 'a sword fight'}, safety_only())

        assert result.passed is True
        assert result.suggested_rating == 'R'

    def test_current_rating_is_kept_when_higher(self):
        validator = make_validator([rule('Mild', severity='low', patterns=['darn'])])

        result = validator.validate({'text': 'darn'}, safety_only(), current_rating='NC-17')

        assert result.suggested_rating == 'NC-17'

    def test_builtin_tiers_only_advise(self):
        validator = make_validator()

        result = validator.validate({'text': 'damn, that hurt'}, safety_only())

        assert result.passed is True
        assert result.suggested_rating == 'PG-13'
        assert result.details['checks']['safety']['source'] == 'builtin'

        slur = validator.validate({'text': 'you slur'}, safety_only())

        assert slur.passed is True
        assert slur.suggested_rating == 'NC-17'

    def test_builtin_tiers_ignored_once_rules_exist(self):
        validator = make_validator([rule('Unrelated', patterns=['zzz'])])

        result = validator.validate({'text': 'damn, that hurt'}, safety_only())

        assert result.suggested_rating == 'G'

    def test_chapter_document_is_flattened(self):
        validator = make_validator([rule('Profanity', patterns=['badword'])])
        document = {'blocks': [
            {'type': 'heading', 'text': 'Chapter One'},
            {'type': 'dialogue', 'lines': [{'speaker': 'Ann', 'text': 'you badword'}]},
        ]}

        result = validator.validate({'text': json.dumps(document)}, safety_only())

        assert result.passed is False
        assert 'Profanity' in result.flags


class TestQualityCheck:
    """Tests for the quality heuristics."""

    def test_clean_text_passes(self):
        result = make_validator().validate({'text': CLEAN_TEXT})

        assert result.passed is True
        assert result.flags == ()
        assert result.score == 1.0

    def test_too_short(self):
        result = make_validator().validate({'text': 'Far too short.'})

        assert result.passed is False
        assert 'too_short' in result.flags

    def test_repetitive_content(self):
        result = make_validator().validate({'text': ' '.join(['echo'] * 12)})

        assert 'repetitive_content' in result.flags
        assert result.details['checks']['quality']['repeatedWords'] == ['echo']
        assert result.details['checks']['quality']['score'] == 0.8

    def test_short_text_is_not_also_repetitive(self):
        result = make_validator().validate({'text': 'Far too short.'})

        assert result.flags == ('too_short',)
        assert result.details['checks']['quality']['repeatedWords'] == []

    def test_document_without_text_is_empty(self):
        document = {'blocks': [{'type': 'image', 'url': 'covers/a.jpg'}, {'type': 'divider'}]}

        result = make_validator().validate({'text': json.dumps(document), 'imageRef': 'covers/a.jpg'})

        assert result.passed is False
        assert 'empty_content' in result.flags
        assert 'too_short' not in result.flags

    def test_image_only_content_has_no_quality_check(self):
        result = make_validator().validate({'imageRef': 'covers/a.jpg'})

        assert 'quality' not in result.details['checks']
        assert result.passed is True

    def test_quality_rule_tightens_minimum(self):
        validator = make_validator([rule('Long chapters', rule_type='quality', severity='low', minWords=50)])

        result = validator.validate({'text': CLEAN_TEXT})

        assert 'too_short' in result.flags


class TestFirstChapterChecks:
    """Tests for plagiarism and duplicate detection."""

    def test_not_run_for_later_chapters(self):
        similarity = MagicMock()
        duplicate = MagicMock()
        validator = make_validator(similarity=similarity, duplicate=duplicate)

        validator.validate({'text': CLEAN_TEXT})

        similarity.assert_not_called()
        duplicate.assert_not_called()

    def test_run_for_first_chapter_excluding_own_work(self):
        from shared.validation import ValidationOptions

        similarity = MagicMock(return_value={'isDuplicate': False, 'matches': [], 'maxSimilarity': 0.0})
        validator = make_validator(similarity=similarity)

        validator.validate(
            {'text': CLEAN_TEXT},
            ValidationOptions(is_first_chapter=True),
            target={'type': 'section', 'id': 's-1', 'workId': 'work-1'}
        )

        similarity.assert_called_once_with(CLEAN_TEXT, 'work-1')

    def test_similarity_above_fail_threshold_fails(self):
        from shared.validation import ValidationOptions

        validator = make_validator(similarity=MagicMock(
            return_value={'isDuplicate': True, 'matches': [], 'maxSimilarity': 0.85}))

        result = validator.validate({'text': CLEAN_TEXT}, ValidationOptions(is_first_chapter=True))

        assert result.passed is False
        assert 'high_similarity' in result.flags

    def test_similarity_between_thresholds_only_flags(self):
        from shared.validation import ValidationOptions

        validator = make_validator(similarity=MagicMock(
            return_value={'isDuplicate': True, 'matches': [], 'maxSimilarity': 0.75}))

        result = validator.validate({'text': CLEAN_TEXT}, ValidationOptions(is_first_chapter=True))

        assert result.passed is True
        assert 'high_similarity' in result.flags

    def test_plagiarism_rule_tightens_fail_threshold(self):
        from shared.validation import ValidationOptions

        validator = make_validator(
            [rule('Strict', rule_type='plagiarism', severity='high', failThreshold=0.5)],
            similarity=MagicMock(return_value={'isDuplicate': False, 'matches': [], 'maxSimilarity': 0.6})
        )

        result = validator.validate({'text': CLEAN_TEXT}, ValidationOptions(is_first_chapter=True))

        assert result.passed is False

    def test_duplicate_fails(self):
        from shared.validation import ValidationOptions

        validator = make_validator(duplicate=MagicMock(
            return_value={'isDuplicate': True, 'contentHash': 'h', 'matches': [{'workId': 'w2'}]}))

        result = validator.validate({'text': CLEAN_TEXT}, ValidationOptions(is_first_chapter=True))

        assert result.passed is False
        assert 'duplicate_content' in result.flags


class TestSoftFailures:
    """Unreachable collaborators are reported, never treated as failed content."""

    def test_image_service_unreachable(self):
        from shared.errors import TransientCollaboratorError

        validator = make_validator(image=MagicMock(
            side_effect=TransientCollaboratorError('image-analysis', 'timeout')))

        result = validator.validate({'text': CLEAN_TEXT, 'imageRef': 'covers/a.jpg'})

        assert result.passed is True
        assert 'image_check_unavailable' in result.flags
        assert 'image' not in result.details['checks']
        assert result.details['unavailable'] == ['image']
        assert result.score == 1.0

    def test_similarity_service_unreachable(self):
        from shared.errors import TransientCollaboratorError
        from shared.validation import ValidationOptions

        validator = make_validator(similarity=MagicMock(
            side_effect=TransientCollaboratorError('similarity', 'down')))

        result = validator.validate({'text': CLEAN_TEXT}, ValidationOptions(is_first_chapter=True))

        assert result.passed is True
        assert 'plagiarism_check_unavailable' in result.flags

    def test_unsafe_image_fails(self):
        validator = make_validator(image=MagicMock(
            return_value={'passed': False, 'score': 0.05, 'flags': ['image_explicit_nudity']}))

        result = validator.validate({'imageRef': 'covers/a.jpg'})

        assert result.passed is False
        assert result.flags == ('image_explicit_nudity',)

    def test_image_skipped_without_safety(self):
        from shared.validation import ValidationOptions

        image = MagicMock()
        validator = make_validator(image=image)

        validator.validate({'text': CLEAN_TEXT, 'imageRef': 'covers/a.jpg'},
                           ValidationOptions(check_safety=False))

        image.assert_not_called()


class TestResultHandling:
    """Tests for persistence modes and the result shape."""

    def test_skip_persistence_has_no_side_effect(self):
        from shared.validation import ValidationOptions

        sink = MagicMock()
        validator = make_validator(sink=sink)

        validator.validate({'text': CLEAN_TEXT}, ValidationOptions(skip_persistence=True))

        sink.assert_not_called()

    def test_result_is_recorded(self):
        from shared.validation import ValidationOptions

        sink = MagicMock()
        validator = make_validator(sink=sink)
        options = ValidationOptions()

        result = validator.validate({'text': CLEAN_TEXT}, options, target={'type': 'section', 'id': 's-1'})

        sink.assert_called_once_with(result, options)
        assert result.target_type == 'section'
        assert result.target_id == 's-1'
        assert len(result.content_hash) == 64

    def test_content_required(self):
        from shared.errors import ValidationError

        with pytest.raises(ValidationError):
            make_validator().validate({'text': '   '})

    def test_public_view_hides_details(self):
        validator = make_validator([rule('Profanity', patterns=['badword'])])

        public = validator.validate({'text': 'badword'}, safety_only()).to_public()

        assert set(public) == {'passed', 'score', 'flags', 'suggestedRating'}
        assert 'badword' not in json.dumps(public)

    def test_flags_are_unique_and_ordered(self):
        validator = make_validator([
            rule('B-rule', patterns=['badword']),
            rule('A-rule', patterns=['badword']),
        ])

        result = validator.validate({'text': 'badword'})

        assert result.flags[:2] == ('A-rule', 'B-rule')
        assert len(result.flags) == len(set(result.flags))

    def test_score_within_bounds(self):
        validator = make_validator([rule('Profanity', patterns=['badword'])])

        result = validator.validate({'text': 'badword ' * 30})

        assert 0.0 <= result.score <= 1.0

    def test_item_is_dynamodb_safe(self):
        result = make_validator().validate({'text': CLEAN_TEXT})

        item = result.to_item()

        assert isinstance(item['score'], Decimal)
        assert isinstance(item['details']['checks']['quality']['score'], Decimal)

    def test_options_from_request(self):
        from shared.errors import ValidationError
        from shared.validation import ValidationOptions

        options = ValidationOptions.from_request({'checkQuality': False, 'isFirstChapter': True})

        assert options.check_quality is False
        assert options.is_first_chapter is True
        assert options.check_safety is True

        with pytest.raises(ValidationError):
            ValidationOptions.from_request({'checkSafety': 'yes'})
