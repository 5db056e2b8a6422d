"""Annotate an address's transaction history against a vesting schedule.

Steps: keep incoming transactions (first record per txid) -> generate
expected grants -> score and assign -> build annotated records in input order
-> re-derive grant linkage -> summarize. Optional price enrichment fills
``value_at_time_of_tx``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import date

from .indexer import filter_incoming, received_amount
from .logging_setup import get_logger
from .matching import match_all
from .models import (
    DEFAULT_ANNOTATION_CONFIG,
    AnnotatedTransaction,
    AnnotationConfig,
    AnnotationResult,
    ExpectedGrant,
    Match,
    MatchingSummary,
    RawTransaction,
    TransactionStatus,
    TransactionType,
    sats_to_btc,
)
from .overrides import relink_grants
from .schedule import generate_expected_grants
from .scoring import MatchScorer

_logger = get_logger("vesting_tracker.annotate")


def _unique_by_txid(transactions: Sequence[RawTransaction]) -> list[RawTransaction]:
    """Drop repeated txids (re-fetched or merged histories), keeping the first."""

    seen: set[str] = set()
    out: list[RawTransaction] = []
    for tx in transactions:
        if tx.txid in seen:
            _logger.debug("duplicate_txid_dropped txid=%s", tx.txid)
            continue
        seen.add(tx.txid)
        out.append(tx)
    return out


def build_annotated(
    transaction: RawTransaction, address: str, match: Match | None
) -> AnnotatedTransaction:
    amount = received_amount(transaction, address)
    return AnnotatedTransaction(
        txid=transaction.txid,
        grant_year=match.grant_year if match else None,
        type=TransactionType.ANNUAL_GRANT if match else TransactionType.OTHER,
        is_incoming=amount > 0,
        amount_sats=amount,
        amount_btc=sats_to_btc(amount),
        date=transaction.date,
        block_height=transaction.block_height,
        status=(
            TransactionStatus.CONFIRMED if transaction.confirmed else TransactionStatus.UNCONFIRMED
        ),
        match_score=match.match_score if match else None,
    )


def apply_price_map(
    annotated: Sequence[AnnotatedTransaction], prices: Mapping[str, float] | None
) -> list[AnnotatedTransaction]:
    """Fill ``value_at_time_of_tx`` (USD, 2 decimals) from a ``YYYY-MM-DD -> price`` map.

    Dates missing from ``prices`` (or ``prices is None``) yield ``None``.
    """

    out: list[AnnotatedTransaction] = []
    for tx in annotated:
        price = prices.get(tx.date.isoformat()) if prices else None
        value = round(tx.amount_btc * price, 2) if price is not None else None
        out.append(replace(tx, value_at_time_of_tx=value))
    return out


def price_dates(annotated: Sequence[AnnotatedTransaction]) -> list[str]:
    """Distinct transaction dates (ISO), in first-seen order."""

    return list(dict.fromkeys(tx.date.isoformat() for tx in annotated))


def summarize(
    annotated: Sequence[AnnotatedTransaction], grants: Sequence[ExpectedGrant]
) -> MatchingSummary:
    matched = sum(1 for tx in annotated if tx.grant_year is not None)
    return MatchingSummary(
        total_transactions=len(annotated),
        matched_transactions=matched,
        unmatched_transactions=len(annotated) - matched,
        expected_grants=len(grants),
        matched_grants=sum(1 for g in grants if g.is_matched),
    )


def annotate(
    transactions: Sequence[RawTransaction],
    tracked_address: str,
    vesting_start_date: date | str,
    per_period_amount_btc: float,
    period_count: int | None,
    config: AnnotationConfig | None = None,
    *,
    prices: Mapping[str, float] | None = None,
    scorer: MatchScorer | None = None,
    concurrency: int = 1,
) -> AnnotationResult:
    """Reconcile ``transactions`` with the expected vesting schedule.

    Only transactions paying a positive amount to ``tracked_address`` appear
    in the result, in input order; a txid repeated in ``transactions`` keeps
    only its first record. Each grant year is held by at most one transaction.

    Raises
    ------
    ValidationError
        Unparseable start date or invalid grant amount.
    """

    cfg = config or DEFAULT_ANNOTATION_CONFIG
    grants = generate_expected_grants(vesting_start_date, per_period_amount_btc, period_count, cfg)
    incoming = _unique_by_txid(filter_incoming(transactions, tracked_address))

    matches = match_all(
        incoming, grants, tracked_address, cfg, scorer=scorer, concurrency=concurrency
    )
    annotated = [build_annotated(tx, tracked_address, matches.get(tx.txid)) for tx in incoming]
    if prices is not None:
        annotated = apply_price_map(annotated, prices)

    linked = relink_grants(annotated, grants)
    summary = summarize(annotated, linked)
    _logger.info(
        "annotated address=%s transactions=%d incoming=%d matched=%d grants=%d/%d",
        tracked_address,
        len(transactions),
        summary.total_transactions,
        summary.matched_transactions,
        summary.matched_grants,
        summary.expected_grants,
    )
    return AnnotationResult(
        annotated_transactions=annotated,
        expected_grants=linked,
        matching_summary=summary,
    )


__all__ = ["build_annotated", "apply_price_map", "price_dates", "summarize", "annotate"]
