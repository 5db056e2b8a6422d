"""Data models for ``vesting_tracker``.

Records flowing through the reconciliation pipeline are frozen ``dataclass``
instances; updates produce new objects via :func:`dataclasses.replace`. The
annotation configuration is a pydantic model so invalid weights or thresholds
are rejected at construction time rather than surfacing as odd scores later.

Every record exposes ``to_dict()`` returning the camelCase JSON shape consumed
by the surrounding UI (dates as ``YYYY-MM-DD`` strings).
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

SATS_PER_BTC: int = 100_000_000


def sats_to_btc(sats: int) -> float:
    return sats / SATS_PER_BTC


def btc_to_sats(btc: float) -> int:
    return round(btc * SATS_PER_BTC)


class TransactionType(StrEnum):
    ANNUAL_GRANT = "Annual Grant"
    OTHER = "Other Transaction"


class TransactionStatus(StrEnum):
    CONFIRMED = "Confirmed"
    UNCONFIRMED = "Unconfirmed"


# ---------------------------------------------------------------------------
# Raw chain data (normalized from the indexer)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TxInput:
    """A spent previous output. ``from_address`` is ``None`` for coinbase inputs."""

    from_address: str | None
    value_sats: int


@dataclass(frozen=True, slots=True)
class TxOutput:
    """A created output. ``to_address`` is ``None`` for non-standard scripts."""

    to_address: str | None
    value_sats: int


@dataclass(frozen=True, slots=True)
class RawTransaction:
    """Minimal transaction record kept from the indexer's verbose schema.

    ``block_time`` is a UTC unix timestamp in seconds. Unconfirmed
    transactions report ``block_height == 0`` and ``block_time == 0`` when the
    indexer omits them.
    """

    txid: str
    confirmed: bool
    block_height: int
    block_time: int
    inputs: tuple[TxInput, ...] = ()
    outputs: tuple[TxOutput, ...] = ()
    fee_sats: int = 0

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.block_time, tz=UTC)

    @property
    def date(self) -> date:
        return self.timestamp.date()


# ---------------------------------------------------------------------------
# Schedule and annotation records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GrantTolerance:
    date_range_days: int
    amount_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {"dateRangeDays": self.date_range_days, "amountPercentage": self.amount_percent}


@dataclass(frozen=True, slots=True)
class ExpectedGrant:
    """One scheduled grant.

    ``is_matched`` and ``matched_txid`` are derived: they are recomputed from
    the annotated transaction set after matching and after overrides.
    """

    year: int
    expected_date: date
    expected_amount_sats: int
    expected_amount_btc: float
    tolerance: GrantTolerance
    is_matched: bool = False
    matched_txid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "expectedDate": self.expected_date.isoformat(),
            "expectedAmountBTC": self.expected_amount_btc,
            "expectedAmountSats": self.expected_amount_sats,
            "isMatched": self.is_matched,
            "matchedTxid": self.matched_txid,
            "tolerance": self.tolerance.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class AnnotatedTransaction:
    """An incoming transaction annotated with its grant assignment.

    Only ``grant_year``, ``type`` and ``is_manually_annotated`` are rewritten by
    manual overrides; ``value_at_time_of_tx`` is filled by price enrichment.
    """

    txid: str
    grant_year: int | None
    type: TransactionType
    is_incoming: bool
    amount_sats: int
    amount_btc: float
    date: date
    block_height: int
    status: TransactionStatus
    value_at_time_of_tx: float | None = None
    match_score: float | None = None
    is_manually_annotated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "txid": self.txid,
            "grantYear": self.grant_year,
            "type": str(self.type),
            "isIncoming": self.is_incoming,
            "amountBTC": self.amount_btc,
            "amountSats": self.amount_sats,
            "date": self.date.isoformat(),
            "blockHeight": self.block_height,
            "valueAtTimeOfTx": self.value_at_time_of_tx,
            "status": str(self.status),
            "matchScore": self.match_score,
            "isManuallyAnnotated": self.is_manually_annotated,
        }


class Match(NamedTuple):
    """An accepted (transaction -> grant year) assignment."""

    grant_year: int
    match_score: float


@dataclass(frozen=True, slots=True)
class MatchingSummary:
    total_transactions: int
    matched_transactions: int
    unmatched_transactions: int
    expected_grants: int
    matched_grants: int

    def to_dict(self) -> dict[str, int]:
        return {
            "totalTransactions": self.total_transactions,
            "matchedTransactions": self.matched_transactions,
            "unmatchedTransactions": self.unmatched_transactions,
            "expectedGrants": self.expected_grants,
            "matchedGrants": self.matched_grants,
        }


@dataclass(frozen=True, slots=True)
class AnnotationResult:
    annotated_transactions: list[AnnotatedTransaction]
    expected_grants: list[ExpectedGrant]
    matching_summary: MatchingSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "annotatedTransactions": [t.to_dict() for t in self.annotated_transactions],
            "expectedGrants": [g.to_dict() for g in self.expected_grants],
            "matchingSummary": self.matching_summary.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class OverrideResult:
    annotated_transactions: list[AnnotatedTransaction]
    expected_grants: list[ExpectedGrant]

    def to_dict(self) -> dict[str, Any]:
        return {
            "annotatedTransactions": [t.to_dict() for t in self.annotated_transactions],
            "expectedGrants": [g.to_dict() for g in self.expected_grants],
        }


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class AnnotationConfig(BaseModel):
    """Scoring weights, acceptance threshold and tolerance ceilings.

    Immutable; pass a new instance (``config.model_copy(update=...)``) to vary
    settings for a single request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    date_weight: float = 0.3
    amount_weight: float = 0.7
    match_threshold: float = 0.6
    max_date_tolerance_days: int = 180
    max_amount_tolerance_percent: float = 25.0

    @field_validator("date_weight", "amount_weight", "match_threshold")
    @classmethod
    def _in_unit_interval(cls, v: float) -> float:
        fv = float(v)
        if math.isfinite(fv) and 0.0 <= fv <= 1.0:
            return fv
        raise ValueError("must be within [0,1]")

    @field_validator("max_date_tolerance_days", "max_amount_tolerance_percent")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v > 0:
            return v
        raise ValueError("tolerance must be positive")

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> AnnotationConfig:
        if abs(self.date_weight + self.amount_weight - 1.0) > 1e-9:
            raise ValueError("date_weight and amount_weight must sum to 1.0")
        return self

    def settings_hash(self) -> str:
        """Stable identifier of these settings, used in score cache keys."""

        s = json.dumps(self.model_dump(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(s.encode("utf-8")).hexdigest()


DEFAULT_ANNOTATION_CONFIG = AnnotationConfig()


__all__ = [
    "SATS_PER_BTC",
    "sats_to_btc",
    "btc_to_sats",
    "TransactionType",
    "TransactionStatus",
    "TxInput",
    "TxOutput",
    "RawTransaction",
    "GrantTolerance",
    "ExpectedGrant",
    "AnnotatedTransaction",
    "Match",
    "MatchingSummary",
    "AnnotationResult",
    "OverrideResult",
    "AnnotationConfig",
    "DEFAULT_ANNOTATION_CONFIG",
]
