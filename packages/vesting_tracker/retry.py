"""Classification-driven retry with exponential backoff and jitter.

:class:`RetryExecutor` wraps arbitrary operations (transaction fetch, price
lookup, annotation). On failure the fault is classified via
:func:`vesting_tracker.errors.classify` and retried only when:

- the classified error is retryable;
- its code is whitelisted by the operation kind's :class:`RetryPolicy`;
- attempts remain.

Cancellation is never retried, and a cancel that arrives during a backoff
wait wakes the wait immediately.

Executors are explicitly constructed and hold no process-wide state; build one
per request or share one across requests, either is safe.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Generic, TypeVar

from .cancellation import CancellationToken
from .errors import (
    ErrorCode,
    ErrorContext,
    OperationKind,
    PartialDataError,
    RequestCancelledError,
    VestingTrackerError,
    classify,
)
from .logging_setup import get_logger

T = TypeVar("T")

# Upper bound of the uniform jitter added to each backoff delay.
_JITTER_MAX_SEC: float = 1.0

_logger = get_logger("vesting_tracker.retry")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry settings for one operation kind. Delays are in seconds."""

    max_retries: int
    base_delay: float
    max_delay: float
    exponential_backoff: bool
    retryable_codes: frozenset[ErrorCode] = frozenset()

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (``attempt`` is 0-based)."""

        if not self.exponential_backoff:
            return self.base_delay
        return min(self.base_delay * (2**attempt), self.max_delay)


DEFAULT_RETRY_POLICIES: Mapping[OperationKind, RetryPolicy] = MappingProxyType(
    {
        OperationKind.TRANSACTION_FETCH: RetryPolicy(
            max_retries=3,
            base_delay=1.0,
            max_delay=5.0,
            exponential_backoff=True,
            retryable_codes=frozenset(
                {ErrorCode.NETWORK_ERROR, ErrorCode.TIMEOUT, ErrorCode.RATE_LIMIT}
            ),
        ),
        OperationKind.PRICE_FETCH: RetryPolicy(
            max_retries=2,
            base_delay=2.0,
            max_delay=8.0,
            exponential_backoff=True,
            retryable_codes=frozenset({ErrorCode.NETWORK_ERROR, ErrorCode.TIMEOUT}),
        ),
        # Local computation failures are not transient.
        OperationKind.ANNOTATION: RetryPolicy(
            max_retries=0,
            base_delay=0.5,
            max_delay=1.0,
            exponential_backoff=False,
        ),
    }
)


@dataclass(frozen=True, slots=True)
class PartialResult(Generic[T]):
    """Data that is usable despite a failed non-essential enrichment."""

    data: T
    error: PartialDataError


def handle_partial_data(available: T, missing: str, context: ErrorContext) -> PartialResult[T]:
    """Wrap ``available`` with a retryable, non-fatal :class:`PartialDataError`.

    Callers proceed with the incomplete data (e.g., USD values left ``None``)
    while surfacing the notice.
    """

    error = PartialDataError(
        f"Partial data available: missing {missing}",
        available="transaction data",
        missing=missing,
    )
    _logger.warning(
        "partial_data operation=%s step=%s address=%s missing=%s",
        context.operation.value,
        context.step,
        context.address,
        missing,
    )
    return PartialResult(data=available, error=error)


class RetryExecutor:
    """Run operations under per-operation-kind retry policies.

    Parameters
    ----------
    policies:
        Optional overrides merged over :data:`DEFAULT_RETRY_POLICIES`.
    sleep:
        Optional ``sleep(seconds)`` replacement (tests pass a no-op). When
        omitted, waits block on the cancel token (or ``time.sleep``-equivalent
        when no token is given).
    rng:
        Source of jitter; defaults to a private ``random.Random``.
    """

    def __init__(
        self,
        policies: Mapping[OperationKind, RetryPolicy] | None = None,
        *,
        sleep: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        merged = dict(DEFAULT_RETRY_POLICIES)
        if policies:
            merged.update(policies)
        self._policies: Mapping[OperationKind, RetryPolicy] = MappingProxyType(merged)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def policy_for(self, kind: OperationKind) -> RetryPolicy:
        return self._policies[kind]

    def _wait(self, seconds: float, cancel: CancellationToken | None) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
            if cancel is not None:
                cancel.raise_if_cancelled()
            return
        token = cancel or CancellationToken()
        if token.wait(seconds):
            raise RequestCancelledError()

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        context: ErrorContext,
        policy: RetryPolicy | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> T:
        """Run ``operation`` and return its result, retrying transient faults.

        Raises the last classified :class:`VestingTrackerError` once retries
        are exhausted or the fault is not retryable under ``policy``.
        """

        policy = policy or self.policy_for(context.operation)
        last: VestingTrackerError | None = None

        for attempt in range(policy.max_retries + 1):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                return operation()
            except Exception as e:  # noqa: BLE001 - classified below
                err = classify(
                    e, replace(context, retry_attempt=attempt, max_retries=policy.max_retries)
                )
                if err is not e:
                    err.__cause__ = e
                last = err

                if err.code is ErrorCode.REQUEST_CANCELLED:
                    break
                if attempt >= policy.max_retries or not err.is_retryable:
                    break
                if err.code not in policy.retryable_codes:
                    break

                delay = policy.delay_for(attempt) + self._rng.uniform(0.0, _JITTER_MAX_SEC)
                _logger.info(
                    "retry operation=%s step=%s attempt=%d/%d code=%s delay=%.2fs msg=%s",
                    context.operation.value,
                    context.step,
                    attempt + 1,
                    policy.max_retries,
                    err.code.value,
                    delay,
                    err.message,
                )
                self._wait(delay, cancel)

        assert last is not None  # loop runs at least once and only exits via error
        if last.code is not ErrorCode.REQUEST_CANCELLED:
            _logger.warning(
                "giving_up operation=%s step=%s code=%s retryable=%s msg=%s",
                context.operation.value,
                context.step,
                last.code.value,
                last.is_retryable,
                last.message,
            )
        raise last


__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICIES",
    "PartialResult",
    "handle_partial_data",
    "RetryExecutor",
]
