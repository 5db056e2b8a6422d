"""Optional memoization of match scores.

The matcher works identically with or without a cache: a cache is a lookup
table keyed by deterministic inputs, never a source of truth. Keys include the
grant's date, amount and tolerance alongside its year so a cache shared across
differently-parameterized schedules cannot return a stale score, and a hash of
the :class:`~vesting_tracker.models.AnnotationConfig` so weight changes roll
the key.
"""

from __future__ import annotations

import threading
from typing import NamedTuple, Protocol, runtime_checkable

from .models import AnnotationConfig, ExpectedGrant, RawTransaction


class ScoreKey(NamedTuple):
    txid: str
    grant_year: int
    expected_date: str
    expected_amount_sats: int
    date_range_days: int
    amount_percent: float
    address: str
    config_hash: str


def score_key(
    transaction: RawTransaction,
    grant: ExpectedGrant,
    address: str,
    config: AnnotationConfig,
) -> ScoreKey:
    return ScoreKey(
        txid=transaction.txid,
        grant_year=grant.year,
        expected_date=grant.expected_date.isoformat(),
        expected_amount_sats=grant.expected_amount_sats,
        date_range_days=grant.tolerance.date_range_days,
        amount_percent=grant.tolerance.amount_percent,
        address=address,
        config_hash=config.settings_hash(),
    )


@runtime_checkable
class ScoreCache(Protocol):
    def get(self, key: ScoreKey) -> float | None: ...

    def set(self, key: ScoreKey, value: float) -> None: ...


class CacheStats(NamedTuple):
    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class InMemoryScoreCache:
    """Thread-safe dict-backed :class:`ScoreCache`.

    Scope one instance to a single annotation call (or a short-lived session);
    :meth:`clear` may be called at any time without affecting correctness.
    """

    def __init__(self) -> None:
        self._data: dict[ScoreKey, float] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: ScoreKey) -> float | None:
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
            return value

    def set(self, key: ScoreKey, value: float) -> None:
        with self._lock:
            self._data[key] = value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(size=len(self._data), hits=self._hits, misses=self._misses)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


__all__ = ["ScoreKey", "score_key", "ScoreCache", "CacheStats", "InMemoryScoreCache"]
