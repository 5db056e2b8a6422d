"""Greedy one-to-one assignment of transactions to expected grants.

Algorithm
---------
1. Score every (transaction, grant) pair; keep pairs scoring at or above
   ``config.match_threshold``.
2. Stable-sort the candidates by score, highest first. Equal scores keep their
   generation order: transaction input order, then grant order.
3. Walk the sorted list and accept a pair only when neither its transaction
   nor its grant year has been claimed.

This is a greedy approximation to maximum-weight bipartite matching, not an
optimal assignment: the single best pair always wins even when a different
assignment would cover more grants. Callers and tests rely on this exact
outcome.

Scoring may run in batches on a thread pool (``concurrency > 1``). Batches are
reassembled in input order, so the candidate list, and therefore the result,
is identical to the sequential path. The greedy pass always runs once,
sequentially, after every score is known.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple

from .logging_setup import get_logger
from .models import AnnotationConfig, ExpectedGrant, Match, RawTransaction
from .scoring import MatchScorer

_DEFAULT_BATCH_SIZE: int = 10

_logger = get_logger("vesting_tracker.matching")


class Candidate(NamedTuple):
    txid: str
    grant_year: int
    score: float


def _batches(
    items: Sequence[RawTransaction], size: int
) -> Iterable[Sequence[RawTransaction]]:
    for k in range(math.ceil(len(items) / size)):
        yield items[k * size : (k + 1) * size]


def _score_batch(
    batch: Sequence[RawTransaction],
    grants: Sequence[ExpectedGrant],
    address: str,
    config: AnnotationConfig,
    scorer: MatchScorer,
) -> list[Candidate]:
    out: list[Candidate] = []
    for tx in batch:
        for grant in grants:
            s = scorer.score(tx, grant, address, config)
            if s >= config.match_threshold:
                out.append(Candidate(tx.txid, grant.year, s))
    return out


def collect_candidates(
    transactions: Sequence[RawTransaction],
    grants: Sequence[ExpectedGrant],
    address: str,
    config: AnnotationConfig,
    *,
    scorer: MatchScorer | None = None,
    batch_size: int | None = None,
    concurrency: int = 1,
) -> list[Candidate]:
    """Return every pair scoring at or above the threshold, in generation order."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")
    scorer = scorer or MatchScorer()
    size = max(1, batch_size or _DEFAULT_BATCH_SIZE)
    txs = list(transactions)

    if concurrency == 1 or len(txs) <= size:
        return _score_batch(txs, grants, address, config, scorer)

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        # ``map`` yields results in submission order regardless of completion order.
        per_batch = list(
            pool.map(
                lambda b: _score_batch(b, grants, address, config, scorer),
                _batches(txs, size),
            )
        )
    return [c for batch in per_batch for c in batch]


def greedy_assign(candidates: Iterable[Candidate]) -> dict[str, Match]:
    """Claim the highest-scoring pairs first, one grant per tx and one tx per grant."""

    # ``sorted`` is stable with ``reverse=True``: ties keep generation order.
    ordered = sorted(candidates, key=lambda c: c.score, reverse=True)
    matches: dict[str, Match] = {}
    used_years: set[int] = set()
    for c in ordered:
        if c.txid in matches or c.grant_year in used_years:
            continue
        matches[c.txid] = Match(grant_year=c.grant_year, match_score=c.score)
        used_years.add(c.grant_year)
    return matches


def match_all(
    transactions: Sequence[RawTransaction],
    grants: Sequence[ExpectedGrant],
    address: str,
    config: AnnotationConfig,
    *,
    scorer: MatchScorer | None = None,
    batch_size: int | None = None,
    concurrency: int = 1,
) -> dict[str, Match]:
    """Map ``txid -> Match`` for every accepted assignment."""

    candidates = collect_candidates(
        transactions,
        grants,
        address,
        config,
        scorer=scorer,
        batch_size=batch_size,
        concurrency=concurrency,
    )
    matches = greedy_assign(candidates)
    _logger.debug(
        "match_all transactions=%d grants=%d candidates=%d matched=%d",
        len(transactions),
        len(grants),
        len(candidates),
        len(matches),
    )
    return matches


__all__ = ["Candidate", "collect_candidates", "greedy_assign", "match_all"]
