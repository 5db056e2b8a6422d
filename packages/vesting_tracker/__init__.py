"""Public interface for the ``vesting_tracker`` package.

This module exposes the package's entry points and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .annotate import annotate, apply_price_map, summarize
from .cache import InMemoryScoreCache, ScoreCache
from .cancellation import CancellationToken
from .errors import (
    DataProcessingError,
    ErrorCode,
    NetworkError,
    OperationKind,
    PartialDataError,
    RequestCancelledError,
    UnknownError,
    ValidationError,
    VestingTrackerError,
    to_user_facing,
)
from .indexer import IndexerClient
from .models import (
    DEFAULT_ANNOTATION_CONFIG,
    AnnotatedTransaction,
    AnnotationConfig,
    AnnotationResult,
    ExpectedGrant,
    MatchingSummary,
    OverrideResult,
    RawTransaction,
    TransactionStatus,
    TransactionType,
)
from .overrides import apply_overrides
from .pipeline import VestingReport, track_vesting
from .retry import DEFAULT_RETRY_POLICIES, RetryExecutor, RetryPolicy
from .schedule import generate_expected_grants

__all__ = [
    # Entry points
    "annotate",
    "apply_overrides",
    "apply_price_map",
    "summarize",
    "generate_expected_grants",
    "track_vesting",
    "VestingReport",
    # Fetch / resilience
    "IndexerClient",
    "RetryExecutor",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICIES",
    "CancellationToken",
    "InMemoryScoreCache",
    "ScoreCache",
    # Models / types
    "RawTransaction",
    "AnnotatedTransaction",
    "ExpectedGrant",
    "MatchingSummary",
    "AnnotationResult",
    "OverrideResult",
    "AnnotationConfig",
    "DEFAULT_ANNOTATION_CONFIG",
    "TransactionType",
    "TransactionStatus",
    # Errors
    "VestingTrackerError",
    "ValidationError",
    "NetworkError",
    "DataProcessingError",
    "PartialDataError",
    "RequestCancelledError",
    "UnknownError",
    "ErrorCode",
    "OperationKind",
    "to_user_facing",
]
