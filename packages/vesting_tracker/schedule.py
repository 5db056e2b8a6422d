"""Expected grant schedule generation and tracker input validation."""

from __future__ import annotations

import math
from datetime import date, datetime

from .addresses import validate_bitcoin_address
from .errors import ValidationError
from .models import (
    DEFAULT_ANNOTATION_CONFIG,
    SATS_PER_BTC,
    AnnotationConfig,
    ExpectedGrant,
    GrantTolerance,
    btc_to_sats,
)

MIN_PERIODS: int = 1
MAX_PERIODS: int = 20
DEFAULT_PERIODS: int = 5

# One satoshi up to 21 BTC per period.
_MIN_GRANT_BTC: float = 1 / SATS_PER_BTC
_MAX_GRANT_BTC: float = 21.0


def clamp_period_count(period_count: int | None) -> int:
    """Clamp to ``[1, 20]``; ``None`` falls back to the 5-period default."""

    if period_count is None:
        period_count = DEFAULT_PERIODS
    return max(MIN_PERIODS, min(MAX_PERIODS, int(period_count)))


def parse_start_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValidationError("Invalid date format", field="vesting start date") from e


def add_years(start: date, years: int) -> date:
    """Advance ``start`` by whole calendar years; Feb 29 lands on Feb 28 in common years."""

    target = start.year + years
    try:
        return start.replace(year=target)
    except ValueError:
        return start.replace(year=target, day=28)


def generate_expected_grants(
    start_date: date | str,
    per_period_btc: float,
    period_count: int | None,
    config: AnnotationConfig | None = None,
) -> list[ExpectedGrant]:
    """Return the ordered schedule of expected grants.

    Grant ``n`` (1-indexed) falls on ``start_date`` advanced by ``n - 1``
    calendar years. Each grant's tolerance window is copied from ``config`` at
    generation time.
    """

    cfg = config or DEFAULT_ANNOTATION_CONFIG
    start = parse_start_date(start_date)
    if (
        isinstance(per_period_btc, bool)
        or not isinstance(per_period_btc, int | float)
        or not math.isfinite(per_period_btc)
    ):
        raise ValidationError("Invalid grant amount", field="grant amount")
    if per_period_btc < 0:
        raise ValidationError("Invalid grant amount: must not be negative", field="grant amount")

    tolerance = GrantTolerance(
        date_range_days=cfg.max_date_tolerance_days,
        amount_percent=cfg.max_amount_tolerance_percent,
    )
    amount_sats = btc_to_sats(per_period_btc)
    return [
        ExpectedGrant(
            year=n,
            expected_date=add_years(start, n - 1),
            expected_amount_sats=amount_sats,
            expected_amount_btc=float(per_period_btc),
            tolerance=tolerance,
        )
        for n in range(1, clamp_period_count(period_count) + 1)
    ]


def validate_tracker_inputs(
    address: str,
    vesting_start_date: date | str,
    grant_amount_btc: float,
    *,
    today: date | None = None,
) -> date:
    """Validate the user-supplied tracker inputs; return the parsed start date.

    - address must be a well-formed Bitcoin address;
    - start date must parse and must not be in the future;
    - amount must lie between one satoshi and 21 BTC.
    """

    validate_bitcoin_address(address)
    start = parse_start_date(vesting_start_date)
    if start > (today or date.today()):
        raise ValidationError("Start date cannot be in the future", field="vesting start date")
    if (
        isinstance(grant_amount_btc, bool)
        or not isinstance(grant_amount_btc, int | float)
        or not math.isfinite(grant_amount_btc)
        or not _MIN_GRANT_BTC <= grant_amount_btc <= _MAX_GRANT_BTC
    ):
        raise ValidationError(
            "Annual grant must be between 1 satoshi and 21 BTC", field="grant amount"
        )
    return start


__all__ = [
    "MIN_PERIODS",
    "MAX_PERIODS",
    "clamp_period_count",
    "parse_start_date",
    "add_years",
    "generate_expected_grants",
    "validate_tracker_inputs",
]
