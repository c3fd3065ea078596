"""
Process-wide cache of active validation rules.

Explicit invalidation is the primary freshness mechanism: rule writes call
`invalidate()` before they report success, so the next read in the same
process reloads. The TTL is only a safety net for changes made by other
processes.

Each load produces an immutable snapshot that replaces the previous one with
a single reference assignment. Readers grab the reference once, so they see
either the old or the new rule set, never a partially built one.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from shared.config import config
from shared.errors import PersistenceError
from shared.logging import logger
from shared.rules import ParsedRule, parse_rules


@dataclass(frozen=True)
class RuleSnapshot:
    generation: int
    loaded_at: float
    rules: Tuple[ParsedRule, ...]
    by_type: Dict[str, Tuple[ParsedRule, ...]]


class RuleCache:
    """Lazily loaded, generation-stamped cache of active rules."""

    def __init__(
        self,
        loader: Callable[[], Iterable[dict]],
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            loader: returns the raw active rule items from the rule store
            ttl_seconds: safety-net expiry; 0 disables it
            clock: monotonic clock, injectable for tests
        """
        self._loader = loader
        self._ttl = config.RULE_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._reload_lock = threading.Lock()
        self._generation_lock = threading.Lock()
        self._generation = 0
        self._snapshot: Optional[RuleSnapshot] = None

    @property
    def generation(self) -> int:
        return self._generation

    def invalidate(self) -> int:
        """Force the next read to reload. Returns the new generation."""
        with self._generation_lock:
            self._generation += 1
            generation = self._generation
        logger.info(f"Rule cache invalidated (generation {generation})")
        return generation

    def get_active_rules(self, rule_type: Optional[str] = None) -> Tuple[ParsedRule, ...]:
        """Active rules, optionally only those of one type, ordered by name."""
        snapshot = self._current()
        if rule_type is None:
            return snapshot.rules
        return snapshot.by_type.get(rule_type, ())

    def _expired(self, snapshot: RuleSnapshot) -> bool:
        return self._ttl > 0 and self._clock() - snapshot.loaded_at >= self._ttl

    def _is_fresh(self, snapshot: Optional[RuleSnapshot]) -> bool:
        return (
            snapshot is not None
            and snapshot.generation == self._generation
            and not self._expired(snapshot)
        )

    def _current(self) -> RuleSnapshot:
        snapshot = self._snapshot
        if self._is_fresh(snapshot):
            return snapshot

        with self._reload_lock:
            snapshot = self._snapshot
            if self._is_fresh(snapshot):
                return snapshot

            # Stamp with the generation seen before loading; an invalidate()
            # that lands mid-load leaves this snapshot stale for the next reader.
            generation = self._generation
            try:
                rules = parse_rules(self._loader())
            except PersistenceError:
                if snapshot is not None and snapshot.generation == generation:
                    logger.warning('Rule store unavailable, serving expired rule snapshot')
                    return snapshot
                raise

            by_type: Dict[str, Tuple[ParsedRule, ...]] = {}
            for rule in rules:
                by_type[rule.type] = by_type.get(rule.type, ()) + (rule,)

            fresh = RuleSnapshot(
                generation=generation,
                loaded_at=self._clock(),
                rules=rules,
                by_type=by_type,
            )
            self._snapshot = fresh
            logger.info(f"Loaded {len(rules)} active validation rules (generation {generation})")
            return fresh
