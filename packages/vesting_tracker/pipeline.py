"""End-to-end vesting tracking: validate, fetch, annotate, enrich with prices.

Fetching and price lookup run under their operation kind's retry policy.
Price enrichment is non-essential: when it fails for any reason other than
cancellation the report is still returned, with USD values left ``None`` and
``partial_error`` describing what is missing.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, TypeAlias

from .annotate import annotate, apply_price_map, price_dates, summarize
from .cancellation import CancellationToken
from .errors import (
    ErrorContext,
    OperationKind,
    PartialDataError,
    RequestCancelledError,
    VestingTrackerError,
)
from .indexer import IndexerClient
from .logging_setup import get_logger
from .models import AnnotationConfig, AnnotationResult, RawTransaction
from .overrides import apply_overrides
from .retry import RetryExecutor, handle_partial_data
from .schedule import validate_tracker_inputs
from .scoring import MatchScorer

PriceLookup: TypeAlias = Callable[[Sequence[str]], Mapping[str, float]]

_MISSING_PRICES = "historical price data"

_logger = get_logger("vesting_tracker.pipeline")


@dataclass(frozen=True, slots=True)
class VestingReport:
    """Annotated result plus the inputs needed to re-derive it."""

    address: str
    result: AnnotationResult
    raw_transactions: list[RawTransaction]
    prices: Mapping[str, float] | None = None
    partial_error: PartialDataError | None = None

    def with_overrides(self, overrides: Mapping[str, int | None]) -> VestingReport:
        """Return a new report with ``overrides`` applied and values re-priced."""

        applied = apply_overrides(
            self.result.annotated_transactions, self.result.expected_grants, overrides
        )
        annotated = applied.annotated_transactions
        if self.prices is not None:
            annotated = apply_price_map(annotated, self.prices)
        result = AnnotationResult(
            annotated_transactions=annotated,
            expected_grants=applied.expected_grants,
            matching_summary=summarize(annotated, applied.expected_grants),
        )
        return replace(self, result=result)

    def to_dict(self) -> dict[str, Any]:
        out = self.result.to_dict()
        out["address"] = self.address
        out["partialError"] = (
            None
            if self.partial_error is None
            else {
                "code": self.partial_error.code.value,
                "message": self.partial_error.message,
                "missing": self.partial_error.missing,
            }
        )
        return out


def _fetch_prices(
    executor: RetryExecutor,
    price_lookup: PriceLookup,
    dates: list[str],
    address: str,
    cancel: CancellationToken | None,
) -> dict[str, float]:
    context = ErrorContext(OperationKind.PRICE_FETCH, "price_lookup", address)

    def _lookup() -> dict[str, float]:
        return {str(k): float(v) for k, v in dict(price_lookup(dates)).items()}

    return executor.execute_with_retry(_lookup, context, cancel=cancel)


def track_vesting(
    address: str,
    vesting_start_date: date | str,
    per_period_amount_btc: float,
    period_count: int | None,
    *,
    client: IndexerClient | None = None,
    executor: RetryExecutor | None = None,
    price_lookup: PriceLookup | None = None,
    config: AnnotationConfig | None = None,
    cancel: CancellationToken | None = None,
    scorer: MatchScorer | None = None,
    concurrency: int = 1,
    today: date | None = None,
) -> VestingReport:
    """Fetch ``address``'s history and reconcile it against the vesting schedule.

    Raises
    ------
    ValidationError
        Invalid address, future or malformed start date, or out-of-range amount.
    NetworkError, DataProcessingError
        The fetch failed after retries.
    RequestCancelledError
        ``cancel`` fired at any point, including during price enrichment.
    """

    start = validate_tracker_inputs(
        address, vesting_start_date, per_period_amount_btc, today=today
    )
    client = client or IndexerClient()
    executor = executor or RetryExecutor()

    raw = executor.execute_with_retry(
        lambda: client.fetch_transactions(address, cancel),
        ErrorContext(OperationKind.TRANSACTION_FETCH, "fetch_transactions", address),
        cancel=cancel,
    )

    result = executor.execute_with_retry(
        lambda: annotate(
            raw,
            address,
            start,
            per_period_amount_btc,
            period_count,
            config,
            scorer=scorer,
            concurrency=concurrency,
        ),
        ErrorContext(OperationKind.ANNOTATION, "annotate", address),
        cancel=cancel,
    )

    prices: dict[str, float] | None = None
    partial_error: PartialDataError | None = None
    dates = price_dates(result.annotated_transactions)
    if price_lookup is not None and dates:
        try:
            prices = _fetch_prices(executor, price_lookup, dates, address, cancel)
        except RequestCancelledError:
            raise
        except VestingTrackerError:
            partial = handle_partial_data(
                result,
                _MISSING_PRICES,
                ErrorContext(OperationKind.PRICE_FETCH, "price_lookup", address),
            )
            partial_error = partial.error
        else:
            result = replace(
                result,
                annotated_transactions=apply_price_map(result.annotated_transactions, prices),
            )

    _logger.info(
        "tracked address=%s raw=%d matched_grants=%d/%d priced=%s",
        address,
        len(raw),
        result.matching_summary.matched_grants,
        result.matching_summary.expected_grants,
        prices is not None,
    )
    return VestingReport(
        address=address,
        result=result,
        raw_transactions=list(raw),
        prices=prices,
        partial_error=partial_error,
    )


__all__ = ["PriceLookup", "VestingReport", "track_vesting"]
