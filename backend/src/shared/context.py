"""
Process-wide pipeline components, created lazily on first use.

A Lambda container keeps these between invocations, so the rule cache
survives warm starts. Handlers fetch them here; shared modules receive them
as arguments.
"""
from shared import rule_store
from shared.rule_cache import RuleCache
from shared.validation import ContentValidator

_rule_cache = None
_validator = None


def get_rule_cache() -> RuleCache:
    """Get or create the rule cache."""
    global _rule_cache
    if _rule_cache is None:
        _rule_cache = RuleCache(rule_store.list_active)
    return _rule_cache


def get_validator() -> ContentValidator:
    """Get or create the content validator bound to the rule cache."""
    global _validator
    if _validator is None:
        _validator = ContentValidator(get_rule_cache())
    return _validator
