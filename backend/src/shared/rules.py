"""
Typed validation rules.

A stored rule carries an opaque JSON `config`. It is parsed once, when the
rule cache loads, into the parameter shape of its `type`:

    safety      {"patterns": [...], "match": "regex"|"substring", "tier": "R"}
    quality     {"minWords": 50, "maxChars": 40000, "repetitionRatio": 0.1}
    plagiarism  {"flagThreshold": 0.6, "failThreshold": 0.75}

Rules that fail to parse are logged and skipped so one bad row never breaks
validation.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Pattern, Tuple, Union

from shared.logging import logger
from shared.models import RATING_RANK, SEVERITY_RANK, RuleType, Severity


class RuleConfigError(ValueError):
    """A rule's config JSON does not fit its type."""


@dataclass(frozen=True)
class SafetyRuleConfig:
    patterns: Tuple[Pattern, ...]
    match: str = 'regex'
    tier: Optional[str] = None


@dataclass(frozen=True)
class QualityRuleConfig:
    min_words: Optional[int] = None
    max_chars: Optional[int] = None
    repetition_ratio: Optional[float] = None


@dataclass(frozen=True)
class PlagiarismRuleConfig:
    flag_threshold: Optional[float] = None
    fail_threshold: Optional[float] = None


RuleConfig = Union[SafetyRuleConfig, QualityRuleConfig, PlagiarismRuleConfig]


@dataclass(frozen=True)
class ParsedRule:
    rule_id: str
    name: str
    type: str
    severity: str
    config: RuleConfig = field(compare=False)

    @property
    def severity_rank(self) -> int:
        return SEVERITY_RANK[self.severity]


def load_config(raw: Any) -> Dict[str, Any]:
    """Decode a stored config (JSON string or dict) into a dict."""
    if raw is None or raw == '':
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise RuleConfigError(f"config is not valid JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise RuleConfigError('config must be a JSON object')
    return decoded


def _parse_safety(name: str, cfg: Dict[str, Any]) -> SafetyRuleConfig:
    match = cfg.get('match', 'regex')
    if match not in ('regex', 'substring'):
        raise RuleConfigError(f"unknown match mode '{match}'")

    tier = cfg.get('tier')
    if tier is not None and tier not in RATING_RANK:
        raise RuleConfigError(f"unknown maturity tier '{tier}'")

    raw_patterns = cfg.get('patterns') or []
    if not isinstance(raw_patterns, list):
        raise RuleConfigError('patterns must be a list')

    compiled = []
    for pattern in raw_patterns:
        source = re.escape(str(pattern)) if match == 'substring' else str(pattern)
        try:
            compiled.append(re.compile(source, re.IGNORECASE))
        except re.error as e:
            logger.warning(f"Skipping invalid pattern {pattern!r} in rule '{name}': {e}")

    return SafetyRuleConfig(patterns=tuple(compiled), match=match, tier=tier)


def _positive(cfg: Dict[str, Any], key: str, cast):
    value = cfg.get(key)
    if value is None:
        return None
    try:
        value = cast(value)
    except (TypeError, ValueError) as e:
        raise RuleConfigError(f"{key} must be a number") from e
    if value <= 0:
        raise RuleConfigError(f"{key} must be positive")
    return value


def _parse_quality(cfg: Dict[str, Any]) -> QualityRuleConfig:
    return QualityRuleConfig(
        min_words=_positive(cfg, 'minWords', int),
        max_chars=_positive(cfg, 'maxChars', int),
        repetition_ratio=_positive(cfg, 'repetitionRatio', float),
    )


def _parse_plagiarism(cfg: Dict[str, Any]) -> PlagiarismRuleConfig:
    flag = _positive(cfg, 'flagThreshold', float)
    fail = _positive(cfg, 'failThreshold', float)
    for value in (flag, fail):
        if value is not None and value > 1:
            raise RuleConfigError('similarity thresholds must be within (0, 1]')
    return PlagiarismRuleConfig(flag_threshold=flag, fail_threshold=fail)


def parse_rule(item: Dict[str, Any]) -> ParsedRule:
    """
    Parse a stored rule item into its typed form.

    Raises:
        RuleConfigError: if type, severity or config are unusable
    """
    name = item.get('name') or item.get('ruleId') or '<unnamed>'
    rule_type = item.get('type')
    severity = item.get('severity', Severity.MEDIUM)

    if rule_type not in RuleType.ALL:
        raise RuleConfigError(f"unknown rule type '{rule_type}'")
    if severity not in SEVERITY_RANK:
        raise RuleConfigError(f"unknown severity '{severity}'")

    cfg = load_config(item.get('config'))
    if rule_type == RuleType.SAFETY:
        config = _parse_safety(name, cfg)
    elif rule_type == RuleType.QUALITY:
        config = _parse_quality(cfg)
    else:
        config = _parse_plagiarism(cfg)

    return ParsedRule(
        rule_id=item.get('ruleId', ''),
        name=name,
        type=rule_type,
        severity=severity,
        config=config,
    )


def parse_rules(items) -> Tuple[ParsedRule, ...]:
    """Parse many rules, dropping (and logging) the ones that do not parse."""
    parsed = []
    for item in items:
        try:
            parsed.append(parse_rule(item))
        except RuleConfigError as e:
            logger.warning(f"Ignoring validation rule {item.get('name') or item.get('ruleId')}: {e}")
    return tuple(sorted(parsed, key=lambda r: r.name))
