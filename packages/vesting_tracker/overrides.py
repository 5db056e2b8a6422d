"""Manual transaction -> grant-year overrides layered over automatic matches.

Precedence, in order:

1. Overrides in the map, processed in transaction order. An override naming a
   year absent from the schedule, or a year already claimed by an earlier
   override, is ignored and the transaction keeps its prior annotation.
   ``None`` marks the transaction as "no grant".
2. Transactions annotated manually by an earlier application and not named in
   the map keep their year unless it is now claimed.
3. Automatic matches keep their year unless it is now claimed, in which case
   they are demoted to "Other Transaction".

Grant linkage (``is_matched``/``matched_txid``) is then re-derived from scratch
by :func:`relink_grants`, so applying the same map twice yields the same
result.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace

from .logging_setup import get_logger
from .models import AnnotatedTransaction, ExpectedGrant, OverrideResult, TransactionType

_logger = get_logger("vesting_tracker.overrides")


def relink_grants(
    annotated: Sequence[AnnotatedTransaction], grants: Sequence[ExpectedGrant]
) -> list[ExpectedGrant]:
    """Recompute each grant's ``is_matched``/``matched_txid`` from ``annotated``."""

    holder: dict[int, str] = {}
    for tx in annotated:
        if tx.grant_year is not None and tx.grant_year not in holder:
            holder[tx.grant_year] = tx.txid
    return [
        replace(g, is_matched=g.year in holder, matched_txid=holder.get(g.year)) for g in grants
    ]


def _assign(tx: AnnotatedTransaction, year: int | None, *, manual: bool) -> AnnotatedTransaction:
    return replace(
        tx,
        grant_year=year,
        type=TransactionType.ANNUAL_GRANT if year is not None else TransactionType.OTHER,
        is_manually_annotated=manual,
    )


def apply_overrides(
    annotated: Sequence[AnnotatedTransaction],
    grants: Sequence[ExpectedGrant],
    overrides: Mapping[str, int | None],
) -> OverrideResult:
    """Apply ``overrides`` (``txid -> grant year or None``) on top of ``annotated``.

    Never raises for bad override entries; they are logged and skipped so the
    one-transaction-per-grant invariant always holds in the output.
    """

    valid_years = {g.year for g in grants}
    known_txids = {tx.txid for tx in annotated}
    for txid in overrides:
        if txid not in known_txids:
            _logger.debug("override_unknown_txid txid=%s", txid)

    updated: list[AnnotatedTransaction] = list(annotated)
    accepted: set[int] = set()
    claimed: set[int] = set()

    # Pass 1: explicit overrides.
    for i, tx in enumerate(updated):
        if tx.txid not in overrides:
            continue
        year = overrides[tx.txid]
        if year is not None:
            if year not in valid_years:
                _logger.warning(
                    "override_ignored txid=%s year=%s reason=unknown_grant_year", tx.txid, year
                )
                continue
            if year in claimed:
                _logger.warning(
                    "override_ignored txid=%s year=%s reason=year_already_assigned",
                    tx.txid,
                    year,
                )
                continue
            claimed.add(year)
        updated[i] = _assign(tx, year, manual=True)
        accepted.add(i)

    # Pass 2: earlier manual annotations, then automatic matches.
    for manual_first in (True, False):
        for i, tx in enumerate(updated):
            if i in accepted or tx.is_manually_annotated is not manual_first:
                continue
            if tx.grant_year is None:
                continue
            if tx.grant_year in claimed:
                _logger.info(
                    "demoted txid=%s year=%s manual=%s reason=year_claimed_by_override",
                    tx.txid,
                    tx.grant_year,
                    tx.is_manually_annotated,
                )
                updated[i] = _assign(tx, None, manual=tx.is_manually_annotated)
                continue
            claimed.add(tx.grant_year)

    return OverrideResult(
        annotated_transactions=updated,
        expected_grants=relink_grants(updated, grants),
    )


__all__ = ["relink_grants", "apply_overrides"]
