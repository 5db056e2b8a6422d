"""Compatibility score between one transaction and one expected grant.

``score = date_score * date_weight + amount_score * amount_weight``

Both sub-scores decay linearly from 1 (exact) to 0 at the grant's tolerance
boundary. A pair whose day gap or percentage gap lies strictly beyond the
tolerance scores 0 outright, so it can never clear a positive threshold on
the strength of the other dimension alone. The combined score lies in
``[0, 1]``.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time

from .cache import ScoreCache, score_key
from .indexer import received_amount
from .models import AnnotationConfig, ExpectedGrant, RawTransaction

_SECONDS_PER_DAY: float = 86_400.0


def _expected_instant(expected: date) -> datetime:
    # Expected dates are calendar days; compare against midnight UTC.
    return datetime.combine(expected, time(0, 0), tzinfo=UTC)


def day_gap(tx_time: datetime, expected: date) -> float:
    """Absolute distance in fractional days from midnight UTC of ``expected``."""

    return abs((tx_time - _expected_instant(expected)).total_seconds()) / _SECONDS_PER_DAY


def percent_gap(amount_sats: int, expected_sats: int) -> float:
    """Absolute deviation from ``expected_sats`` in percent (``inf`` when expected is 0)."""

    if expected_sats == 0:
        return float("inf")
    return abs(amount_sats - expected_sats) / expected_sats * 100.0


def _linear(gap: float, tolerance: float) -> float:
    if tolerance <= 0:
        return 1.0 if gap == 0 else 0.0
    if gap > tolerance:
        return 0.0
    return max(0.0, 1.0 - gap / tolerance)


def date_score(tx_time: datetime, expected: date, tolerance_days: float) -> float:
    return _linear(day_gap(tx_time, expected), tolerance_days)


def amount_score(amount_sats: int, expected_sats: int, tolerance_percent: float) -> float:
    if expected_sats == 0:
        return 0.0
    return _linear(percent_gap(amount_sats, expected_sats), tolerance_percent)


def match_score(
    transaction: RawTransaction,
    grant: ExpectedGrant,
    address: str,
    config: AnnotationConfig,
) -> float:
    """Uncached score of ``transaction`` against ``grant`` for ``address``."""

    amount = received_amount(transaction, address)
    if amount == 0:
        return 0.0
    tolerance = grant.tolerance
    days = day_gap(transaction.timestamp, grant.expected_date)
    if days > tolerance.date_range_days:
        return 0.0
    if grant.expected_amount_sats and (
        percent_gap(amount, grant.expected_amount_sats) > tolerance.amount_percent
    ):
        return 0.0
    ds = _linear(days, tolerance.date_range_days)
    as_ = amount_score(amount, grant.expected_amount_sats, tolerance.amount_percent)
    combined = ds * config.date_weight + as_ * config.amount_weight
    # Clamp float drift from weights like 0.3 + 0.7.
    return min(1.0, max(0.0, combined))


class MatchScorer:
    """Scores pairs, optionally through an injected :class:`ScoreCache`."""

    def __init__(self, cache: ScoreCache | None = None) -> None:
        self.cache = cache

    def score(
        self,
        transaction: RawTransaction,
        grant: ExpectedGrant,
        address: str,
        config: AnnotationConfig,
    ) -> float:
        if self.cache is None:
            return match_score(transaction, grant, address, config)
        key = score_key(transaction, grant, address, config)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        value = match_score(transaction, grant, address, config)
        self.cache.set(key, value)
        return value


__all__ = [
    "day_gap",
    "percent_gap",
    "date_score",
    "amount_score",
    "match_score",
    "MatchScorer",
]
