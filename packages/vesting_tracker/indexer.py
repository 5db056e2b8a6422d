"""Thin client for a mempool.space-compatible address indexer.

Issues one ``GET <base>/address/{address}/txs`` per call and normalizes the
indexer's verbose per-transaction schema down to
:class:`~vesting_tracker.models.RawTransaction`. Retries are not handled here;
wrap calls with :class:`vesting_tracker.retry.RetryExecutor`.

Configuration
-------------
- ``VESTING_TRACKER_INDEXER_URL``: indexer base URL
  (default ``https://mempool.space/api``).
- ``VESTING_TRACKER_TIMEOUT_SECONDS``: per-request timeout (default 30).

Timeout and cancellation: a ``threading.Timer`` cancels a request-scoped token
after the timeout; the caller's token is linked into the same scope. Either
cancellation closes the in-flight response, so a blocked read is aborted
rather than left running.
"""

from __future__ import annotations

import json
import os
import threading
import time
import urllib.error
import urllib.request
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictBool, StrictFloat, StrictInt, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .addresses import validate_bitcoin_address, validate_txid
from .cancellation import CancellationToken
from .errors import (
    DataProcessingError,
    ErrorContext,
    NetworkError,
    OperationKind,
    RequestCancelledError,
    VestingTrackerError,
    classify,
)
from .logging_setup import get_logger
from .models import RawTransaction, TxInput, TxOutput

DEFAULT_BASE_URL = "https://mempool.space/api"
DEFAULT_TIMEOUT_SEC: float = 30.0
_USER_AGENT = "vesting-tracker/0.1"
_STEP = "transaction data"

_logger = get_logger("vesting_tracker.indexer")


def _resolve_base_url(base_url: str | None) -> str:
    url = base_url or os.getenv("VESTING_TRACKER_INDEXER_URL") or DEFAULT_BASE_URL
    return url.strip().rstrip("/")


def _resolve_timeout(timeout: float | None) -> float:
    if timeout is not None:
        return float(timeout)
    env_val = os.getenv("VESTING_TRACKER_TIMEOUT_SECONDS")
    try:
        parsed = float(env_val) if env_val else None
    except ValueError:
        parsed = None
    if parsed is not None and parsed > 0:
        return parsed
    return DEFAULT_TIMEOUT_SEC


# ---------------------------------------------------------------------------
# Indexer wire schema (only the fields we keep; extras are ignored)
# ---------------------------------------------------------------------------


class _Prevout(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scriptpubkey_address: str | None = None
    value: StrictInt = 0


class _Vin(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Absent for coinbase inputs.
    prevout: _Prevout | None = None


class _Vout(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Absent for OP_RETURN and other non-standard outputs.
    scriptpubkey_address: str | None = None
    value: StrictInt = 0


class _Status(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confirmed: StrictBool
    block_height: int | None = None
    block_time: int | None = None


class IndexerTransaction(BaseModel):
    """One transaction as returned by ``/address/{address}/txs``."""

    model_config = ConfigDict(extra="ignore")

    txid: str
    status: _Status
    vin: list[_Vin]
    vout: list[_Vout]
    fee: StrictInt | StrictFloat

    def to_raw(self) -> RawTransaction:
        return RawTransaction(
            txid=self.txid,
            confirmed=self.status.confirmed,
            block_height=self.status.block_height or 0,
            block_time=self.status.block_time or 0,
            inputs=tuple(
                TxInput(
                    from_address=v.prevout.scriptpubkey_address if v.prevout else None,
                    value_sats=v.prevout.value if v.prevout else 0,
                )
                for v in self.vin
            ),
            outputs=tuple(
                TxOutput(to_address=o.scriptpubkey_address, value_sats=o.value) for o in self.vout
            ),
            fee_sats=int(self.fee),
        )


_TX_LIST_ADAPTER: TypeAdapter[list[IndexerTransaction]] = TypeAdapter(list[IndexerTransaction])


def parse_transactions(payload: Any) -> list[RawTransaction]:
    """Validate a decoded ``/address/{address}/txs`` payload and normalize it.

    Raises :class:`DataProcessingError` when the payload is not a list of
    objects carrying ``txid``, boolean ``status.confirmed``, ``vin``, ``vout``
    and a numeric ``fee``.
    """

    try:
        items = _TX_LIST_ADAPTER.validate_python(payload)
    except PydanticValidationError as e:
        raise DataProcessingError("Invalid API response format", _STEP) from e
    return [item.to_raw() for item in items]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def received_amount(transaction: RawTransaction, address: str) -> int:
    """Sum of outputs paid to ``address`` in sats. Inputs are ignored."""

    return sum(o.value_sats for o in transaction.outputs if o.to_address == address)


def filter_incoming(transactions: Iterable[RawTransaction], address: str) -> list[RawTransaction]:
    """Keep transactions that paid a positive amount to ``address``, in order."""

    return [tx for tx in transactions if received_amount(tx, address) > 0]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class IndexerClient:
    """Stateless address-transactions client.

    Parameters
    ----------
    base_url, timeout:
        Override the environment/default configuration.
    urlopen:
        Optional replacement for :func:`urllib.request.urlopen` (tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        *,
        user_agent: str = _USER_AGENT,
        urlopen: Callable[..., Any] | None = None,
    ) -> None:
        self.base_url = _resolve_base_url(base_url)
        self.timeout = _resolve_timeout(timeout)
        self.user_agent = user_agent
        self._urlopen = urlopen

    def _open(self, req: urllib.request.Request) -> Any:
        opener = self._urlopen or urllib.request.urlopen
        return opener(req, timeout=self.timeout)

    def _get_json(self, url: str, cancel: CancellationToken | None, context: ErrorContext) -> Any:
        scope = cancel.child() if cancel is not None else CancellationToken()
        timer = threading.Timer(self.timeout, scope.cancel, args=("timeout",))
        timer.daemon = True

        def _interrupted() -> VestingTrackerError:
            if scope.reason == "timeout":
                return NetworkError("Request timeout", 408)
            return RequestCancelledError()

        req = urllib.request.Request(
            url,
            headers={"Accept": "application/json", "User-Agent": self.user_agent},
            method="GET",
        )

        timer.start()
        try:
            if scope.cancelled:
                raise _interrupted()
            try:
                resp = self._open(req)
            except urllib.error.HTTPError as e:
                try:
                    err_body = e.read().decode("utf-8", errors="replace")
                except Exception:  # noqa: BLE001 - body is diagnostic only
                    err_body = ""
                _logger.debug("http_error url=%s status=%s body=%s", url, e.code, err_body[:200])
                raise classify(e, context) from e
            except Exception as e:  # noqa: BLE001 - classified below
                if scope.cancelled:
                    raise _interrupted() from e
                raise classify(e, context) from e

            with resp:
                unregister = scope.on_cancel(resp.close)
                try:
                    body = resp.read()
                except Exception as e:  # noqa: BLE001 - classified below
                    if scope.cancelled:
                        raise _interrupted() from e
                    raise classify(e, context) from e
                finally:
                    unregister()
            if scope.cancelled:
                raise _interrupted()
        finally:
            timer.cancel()

        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DataProcessingError("Invalid response format received", _STEP) from e

    def fetch_transactions(
        self, address: str, cancel: CancellationToken | None = None
    ) -> list[RawTransaction]:
        """Fetch and normalize all indexer transactions for ``address``.

        Raises
        ------
        ValidationError
            Malformed address (no network call is made).
        NetworkError
            Transport failure, timeout (408) or non-2xx HTTP status.
        DataProcessingError
            Response is not JSON or does not match the expected schema.
        RequestCancelledError
            ``cancel`` was triggered before or during the request.
        """

        validate_bitcoin_address(address)
        context = ErrorContext(OperationKind.TRANSACTION_FETCH, "fetch_transactions", address)
        url = f"{self.base_url}/address/{address}/txs"

        t0 = time.perf_counter()
        payload = self._get_json(url, cancel, context)
        transactions = parse_transactions(payload)
        _logger.debug(
            "fetched address=%s count=%d seconds=%.3f",
            address,
            len(transactions),
            time.perf_counter() - t0,
        )
        return transactions

    def fetch_transaction(
        self, txid: str, cancel: CancellationToken | None = None
    ) -> RawTransaction:
        """Fetch a single transaction by id (64 hex chars)."""

        validate_txid(txid)
        context = ErrorContext(OperationKind.TRANSACTION_FETCH, "fetch_transaction")
        payload = self._get_json(f"{self.base_url}/tx/{txid}", cancel, context)
        if not isinstance(payload, dict):
            raise DataProcessingError("Invalid transaction response format", _STEP)
        return parse_transactions([payload])[0]

    def has_transaction_history(
        self, address: str, cancel: CancellationToken | None = None
    ) -> bool:
        """True when the indexer reports at least one transaction (404 -> False)."""

        try:
            return len(self.fetch_transactions(address, cancel)) > 0
        except NetworkError as e:
            if e.status == 404:
                return False
            raise


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT_SEC",
    "IndexerTransaction",
    "IndexerClient",
    "parse_transactions",
    "received_amount",
    "filter_incoming",
]
