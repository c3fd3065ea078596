"""
Content validation engine.

Evaluates one piece of content (chapter text and/or a cover image) against the
active rules and the collaborator checks, producing a ValidationResult:

    safety      active safety rules (blocking at SAFETY_BLOCK_SEVERITY and up)
    quality     length and repetition heuristics
    plagiarism  similarity against published works (first chapters only)
    duplicates  exact content-hash match (first chapters only)
    image       Rekognition moderation labels (best effort)

Collaborators that cannot be reached yield a SoftResult with an error: the
check is reported as unavailable and left out of `passed` and `score`.
"""
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared import image_safety, similarity, validation_store
from shared.config import config
from shared.errors import TransientCollaboratorError, ValidationError
from shared.logging import logger
from shared.models import (
    RATING_RANK, SEVERITY_RANK, SEVERITY_RATING, MaturityRating, RuleType, Severity, SubjectType
)
from shared.utils import (
    content_hash, extract_text, to_decimal, to_dynamo, utc_now_iso, word_frequency
)

CHECK_WEIGHTS = {
    'safety': 0.4,
    'quality': 0.3,
    'plagiarism': 0.2,
    'duplicates': 0.1,
    'image': 0.4,
}

# Advisory word tiers used only while no safety rules are configured
BUILTIN_TIERS = (
    (MaturityRating.PG, re.compile(r'\b(darn|heck|crap)\b', re.IGNORECASE)),
    (MaturityRating.PG_13, re.compile(r'\b(shit|damn|bastard)\b', re.IGNORECASE)),
    (MaturityRating.R, re.compile(r'\b(fuck|rape|torture|kill|murder)\b', re.IGNORECASE)),
    (MaturityRating.NC_17, re.compile(r'\b(cunt|nigger|fag|slur)\b', re.IGNORECASE)),
)


@dataclass(frozen=True)
class ValidationOptions:
    check_safety: bool = True
    check_quality: bool = True
    check_plagiarism: bool = True
    check_duplicates: bool = True
    is_first_chapter: bool = False
    skip_persistence: bool = False

    @classmethod
    def from_request(cls, raw: Optional[Dict[str, Any]]) -> 'ValidationOptions':
        """Build options from a camelCase request body; unknown keys are ignored."""
        raw = raw or {}
        names = {
            'checkSafety': 'check_safety',
            'checkQuality': 'check_quality',
            'checkPlagiarism': 'check_plagiarism',
            'checkDuplicates': 'check_duplicates',
            'isFirstChapter': 'is_first_chapter',
            'skipPersistence': 'skip_persistence',
        }
        values = {}
        for key, attr in names.items():
            if key in raw:
                if not isinstance(raw[key], bool):
                    raise ValidationError(f"{key} must be a boolean")
                values[attr] = raw[key]
        return cls(**values)


@dataclass(frozen=True)
class SoftResult:
    """Outcome of a best-effort collaborator call: an outcome or the reason there is none."""
    outcome: Optional[Dict[str, Any]] = None
    error: Optional[TransientCollaboratorError] = None

    @property
    def available(self) -> bool:
        return self.error is None


@dataclass
class CheckResult:
    name: str
    passed: bool
    score: float
    flags: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    passed: bool
    score: float
    flags: Tuple[str, ...]
    details: Dict[str, Any]
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    work_id: Optional[str] = None
    content_hash: str = ''
    result_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def suggested_rating(self) -> Optional[str]:
        return self.details.get('suggestedRating')

    def to_item(self) -> Dict[str, Any]:
        """DynamoDB item for the append-only results table."""
        return {
            'resultId': self.result_id,
            'targetKey': f"{self.target_type}#{self.target_id}",
            'targetType': self.target_type,
            'targetId': self.target_id,
            'workId': self.work_id,
            'passed': self.passed,
            'score': to_decimal(self.score),
            'flags': list(self.flags),
            'details': to_dynamo(self.details),
            'contentHash': self.content_hash,
            'createdAt': self.created_at,
        }

    def to_public(self) -> Dict[str, Any]:
        """What a submitter may see; rule configuration never leaves the engine."""
        return {
            'passed': self.passed,
            'score': self.score,
            'flags': list(self.flags),
            'suggestedRating': self.suggested_rating,
        }


def _higher_rating(a: str, b: str) -> str:
    return a if RATING_RANK.get(a, 0) >= RATING_RANK.get(b, 0) else b


class ContentValidator:
    """Validates content against cached rules and the similarity/image collaborators."""

    def __init__(
        self,
        rule_cache,
        similarity_checker: Callable[..., Dict[str, Any]] = similarity.check_similarity,
        duplicate_checker: Callable[..., Dict[str, Any]] = similarity.check_duplicate,
        image_checker: Callable[[str], Dict[str, Any]] = image_safety.check_image_safety,
        result_sink: Callable[..., Any] = validation_store.record_result
    ):
        self.rule_cache = rule_cache
        self.similarity_checker = similarity_checker
        self.duplicate_checker = duplicate_checker
        self.image_checker = image_checker
        self.result_sink = result_sink

    def validate(
        self,
        content: Dict[str, Any],
        options: Optional[ValidationOptions] = None,
        target: Optional[Dict[str, Any]] = None,
        current_rating: Optional[str] = None
    ) -> ValidationResult:
        """
        Validate content and (unless skip_persistence) record the result.

        Args:
            content: {'text': str or chapter document, 'imageRef': url}
            options: which checks to run; defaults to all but first-chapter checks
            target: {'type': 'work'|'section', 'id': ..., 'workId': ...}
            current_rating: the work's present maturity rating

        Raises:
            ValidationError: if neither text nor imageRef is given
        """
        options = options or ValidationOptions()
        target = target or {}
        content = content or {}

        text = extract_text(content.get('text')).strip()
        image_ref = content.get('imageRef')
        if not text and not image_ref:
            raise ValidationError('Content text or imageRef is required')

        exclude_work_id = target.get('workId') or (
            target.get('id') if target.get('type') == SubjectType.WORK else None
        )

        checks: List[CheckResult] = []
        unavailable: List[str] = []
        suggested = current_rating or MaturityRating.G

        if text and options.check_safety:
            safety = self._check_safety(text)
            suggested = _higher_rating(safety.details.pop('rating'), suggested)
            checks.append(safety)

        # A chapter document with only image or divider blocks flattens to nothing
        if options.check_quality and (text or content.get('text')):
            checks.append(self._check_quality(text))

        if text and options.is_first_chapter:
            if options.check_plagiarism:
                soft = self._call_soft(self.similarity_checker, text, exclude_work_id)
                if soft.available:
                    checks.append(self._plagiarism_result(soft.outcome))
                else:
                    unavailable.append('plagiarism')
            if options.check_duplicates:
                soft = self._call_soft(self.duplicate_checker, text, exclude_work_id)
                if soft.available:
                    checks.append(self._duplicate_result(soft.outcome))
                else:
                    unavailable.append('duplicate')

        if image_ref and options.check_safety:
            soft = self._call_soft(self.image_checker, image_ref)
            if soft.available:
                outcome = soft.outcome
                checks.append(CheckResult(
                    name='image',
                    passed=bool(outcome.get('passed')),
                    score=float(outcome.get('score', 0.0)),
                    flags=list(outcome.get('flags', [])),
                    details={'analysis': outcome.get('analysis')}
                ))
            else:
                unavailable.append('image')

        result = self._aggregate(checks, unavailable, suggested, current_rating)
        result.target_type = target.get('type')
        result.target_id = target.get('id')
        result.work_id = exclude_work_id
        result.content_hash = content_hash(text) if text else ''

        logger.info(
            f"Validated {result.target_type or 'content'} {result.target_id or ''}: "
            f"passed={result.passed} score={result.score} flags={list(result.flags)}"
        )

        if not options.skip_persistence:
            self.result_sink(result, options)
        return result

    def _call_soft(self, checker: Callable[..., Dict[str, Any]], *args) -> SoftResult:
        try:
            return SoftResult(outcome=checker(*args))
        except TransientCollaboratorError as e:
            logger.warning(f"Soft failure, check skipped: {e}")
            return SoftResult(error=e)

    def _check_safety(self, text: str) -> CheckResult:
        rules = self.rule_cache.get_active_rules(RuleType.SAFETY)
        block_rank = SEVERITY_RANK.get(config.SAFETY_BLOCK_SEVERITY, SEVERITY_RANK[Severity.HIGH])
        rating = MaturityRating.G

        if not rules:
            tiers = [tier for tier, pattern in BUILTIN_TIERS if pattern.search(text)]
            for tier in tiers:
                rating = _higher_rating(tier, rating)
            return CheckResult(
                name='safety',
                passed=True,
                score=max(0.2, 1.0 - 0.2 * len(tiers)),
                details={'source': 'builtin', 'tiers': tiers, 'rating': rating}
            )

        blocking: List[str] = []
        advisory: List[Dict[str, str]] = []
        for rule in rules:
            if not any(pattern.search(text) for pattern in rule.config.patterns):
                continue
            rating = _higher_rating(rule.config.tier or SEVERITY_RATING[rule.severity], rating)
            if rule.severity_rank >= block_rank:
                blocking.append(rule.name)
            else:
                advisory.append({'rule': rule.name, 'severity': rule.severity})

        return CheckResult(
            name='safety',
            passed=not blocking,
            score=0.0 if blocking else max(0.2, 1.0 - 0.2 * len(advisory)),
            flags=blocking,
            details={'source': 'rules', 'advisory': advisory, 'rating': rating}
        )

    def _check_quality(self, text: str) -> CheckResult:
        min_words = config.QUALITY_MIN_WORDS
        max_chars = config.QUALITY_MAX_CHARS
        repetition_ratio = config.QUALITY_REPETITION_RATIO
        # Quality rules can only make the heuristics stricter
        for rule in self.rule_cache.get_active_rules(RuleType.QUALITY):
            cfg = rule.config
            if cfg.min_words:
                min_words = max(min_words, cfg.min_words)
            if cfg.max_chars:
                max_chars = min(max_chars, cfg.max_chars)
            if cfg.repetition_ratio:
                repetition_ratio = min(repetition_ratio, cfg.repetition_ratio)

        word_count = len(text.split())
        flags = []
        if not text:
            flags.append('empty_content')
        elif word_count < min_words:
            flags.append('too_short')
        if len(text) > max_chars:
            flags.append('too_long')

        # Below the minimum length every word is over the ratio; too_short covers it
        repeated = sorted(
            word for word, count in word_frequency(text).items()
            if count > word_count * repetition_ratio
        )[:10] if word_count >= min_words else []
        if repeated:
            flags.append('repetitive_content')

        return CheckResult(
            name='quality',
            passed=not flags,
            score=max(0.0, 1.0 - 0.2 * len(flags)),
            flags=flags,
            details={'wordCount': word_count, 'repeatedWords': repeated}
        )

    def _similarity_thresholds(self) -> Tuple[float, float]:
        flag_at = config.SIMILARITY_FLAG_THRESHOLD
        fail_at = config.SIMILARITY_FAIL_THRESHOLD
        for rule in self.rule_cache.get_active_rules(RuleType.PLAGIARISM):
            if rule.config.flag_threshold:
                flag_at = min(flag_at, rule.config.flag_threshold)
            if rule.config.fail_threshold:
                fail_at = min(fail_at, rule.config.fail_threshold)
        return flag_at, fail_at

    def _plagiarism_result(self, outcome: Dict[str, Any]) -> CheckResult:
        flag_at, fail_at = self._similarity_thresholds()
        max_similarity = float(outcome.get('maxSimilarity', 0.0))
        flags = ['high_similarity'] if max_similarity >= flag_at else []
        return CheckResult(
            name='plagiarism',
            passed=max_similarity < fail_at,
            score=max(0.0, 1.0 - max_similarity),
            flags=flags,
            details={'maxSimilarity': max_similarity, 'matches': outcome.get('matches', [])}
        )

    def _duplicate_result(self, outcome: Dict[str, Any]) -> CheckResult:
        duplicate = bool(outcome.get('isDuplicate'))
        return CheckResult(
            name='duplicates',
            passed=not duplicate,
            score=0.0 if duplicate else 1.0,
            flags=['duplicate_content'] if duplicate else [],
            details={'matches': outcome.get('matches', [])}
        )

    def _aggregate(
        self,
        checks: List[CheckResult],
        unavailable: List[str],
        suggested_rating: str,
        current_rating: Optional[str]
    ) -> ValidationResult:
        flags: Dict[str, None] = {}
        for check in checks:
            flags.update(dict.fromkeys(check.flags))
        for name in unavailable:
            flags[f"{name}_check_unavailable"] = None

        total_weight = sum(CHECK_WEIGHTS[c.name] for c in checks)
        if total_weight:
            score = sum(CHECK_WEIGHTS[c.name] * c.score for c in checks) / total_weight
        else:
            score = 1.0
        score = round(min(1.0, max(0.0, score)), 4)

        return ValidationResult(
            passed=all(c.passed for c in checks),
            score=score,
            flags=tuple(flags),
            details={
                'checks': {
                    c.name: {'passed': c.passed, 'score': round(c.score, 4), **c.details}
                    for c in checks
                },
                'unavailable': unavailable,
                'suggestedRating': suggested_rating,
                'currentRating': current_rating,
            }
        )
