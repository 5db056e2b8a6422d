"""CLI for the ``vesting_tracker`` package.

This module exposes callable command handlers (``cmd_track``,
``cmd_check_address``) and a Typer-based console interface. Environment
variables (indexer URL, timeout, scoring workers, log level) are loaded from a
local ``.env`` using ``python-dotenv`` before delegating to command logic.
Business logic lives in ``vesting_tracker.pipeline`` and related modules.

Exit codes: ``0`` success, ``1`` runtime failure, ``2`` invalid input.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .errors import ErrorCode, ValidationError, VestingTrackerError, to_user_facing
from .logging_setup import configure_logging

_EXIT_FAILURE = 1
_EXIT_INVALID_INPUT = 2


# ---- Small module-level helpers used by CLI commands -------------------------


def _resolve_scoring_workers() -> int:
    """Resolve the scoring thread count.

    Honors the optional ``VESTING_TRACKER_SCORING_WORKERS`` env var, caps to
    32, and falls back to sequential scoring (1) when unset or invalid.
    """

    env_workers = os.getenv("VESTING_TRACKER_SCORING_WORKERS")
    try:
        workers = int(env_workers) if env_workers else None
    except ValueError:
        workers = None
    if workers is not None and workers > 0:
        return min(workers, 32)
    return 1


def _parse_overrides(values: Sequence[str]) -> dict[str, int | None]:
    """Parse ``TXID=YEAR`` / ``TXID=none`` pairs into an override map."""

    out: dict[str, int | None] = {}
    for raw in values:
        txid, sep, year = raw.partition("=")
        txid, year = txid.strip(), year.strip()
        if not sep or not txid or not year:
            raise ValidationError(f"Invalid override '{raw}': expected TXID=YEAR", "override")
        if year.lower() in {"none", "null", "-"}:
            out[txid] = None
            continue
        try:
            out[txid] = int(year)
        except ValueError as e:
            raise ValidationError(
                f"Invalid override '{raw}': year must be an integer or 'none'", "override"
            ) from e
    return out


def _load_prices(path: Path) -> dict[str, float]:
    """Read a ``{"YYYY-MM-DD": price}`` JSON object from ``path``."""

    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValidationError("Invalid price file: expected a JSON object", "price file")
    try:
        return {str(k): float(v) for k, v in data.items()}
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid price file: prices must be numbers", "price file") from e


def _report_error(error: VestingTrackerError) -> int:
    uf = to_user_facing(error)
    print(f"Error: {uf.title}: {uf.message}", file=sys.stderr)
    print(f"  {error.message}", file=sys.stderr)
    print(f"  {uf.actionable}", file=sys.stderr)
    return _EXIT_INVALID_INPUT if error.code is ErrorCode.VALIDATION_ERROR else _EXIT_FAILURE


def _format_row(tx: Mapping[str, object]) -> str:
    year = tx["grantYear"]
    score = tx["matchScore"]
    value = tx["valueAtTimeOfTx"]
    return "\t".join(
        [
            str(tx["date"]),
            str(tx["txid"]),
            f"{tx['amountBTC']:.8f}",
            str(tx["type"]),
            "-" if year is None else str(year),
            "-" if score is None else f"{score:.3f}",
            "-" if value is None else f"{value:.2f}",
        ]
    )


# ---- Command handlers ----------------------------------------------------------


def cmd_track(
    address: str,
    *,
    start_date: str,
    amount_btc: float,
    grants: int | None = None,
    prices_json: Path | None = None,
    overrides: Sequence[str] = (),
    as_json: bool = False,
) -> int:
    """Track a vesting schedule for ``address`` and print the annotated result.

    Behavior
    --------
    - Fetches the address history from the indexer (with retries), annotates it
      against the schedule, and applies any ``TXID=YEAR`` overrides.
    - ``prices_json`` supplies historical USD prices keyed by ``YYYY-MM-DD``;
      without it USD values are omitted.
    - With ``as_json`` the full report is printed as JSON; otherwise one
      tab-separated row per incoming transaction followed by a summary line.
    """

    from .pipeline import track_vesting

    try:
        override_map = _parse_overrides(overrides)
        price_map = _load_prices(prices_json) if prices_json is not None else None
    except VestingTrackerError as e:
        return _report_error(e)
    except FileNotFoundError:
        print(f"Error: File not found: {prices_json}", file=sys.stderr)
        return _EXIT_FAILURE
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: Failed to read price file '{prices_json}': {e}", file=sys.stderr)
        return _EXIT_FAILURE

    def _lookup(dates: Sequence[str]) -> dict[str, float]:
        assert price_map is not None
        return {d: price_map[d] for d in dates if d in price_map}

    try:
        report = track_vesting(
            address,
            start_date,
            amount_btc,
            grants,
            price_lookup=_lookup if price_map is not None else None,
            concurrency=_resolve_scoring_workers(),
        )
        if override_map:
            report = report.with_overrides(override_map)
    except VestingTrackerError as e:
        return _report_error(e)

    if report.partial_error is not None:
        uf = to_user_facing(report.partial_error)
        print(f"Warning: {uf.title}: {uf.message}", file=sys.stderr)

    payload = report.to_dict()
    if as_json:
        print(json.dumps(payload, indent=2))
        return 0

    for tx in payload["annotatedTransactions"]:
        print(_format_row(tx))
    s = report.result.matching_summary
    print(
        f"matched {s.matched_grants}/{s.expected_grants} grants; "
        f"{s.matched_transactions}/{s.total_transactions} incoming transactions matched"
    )
    return 0


def cmd_check_address(address: str) -> int:
    """Validate ``address`` and report whether the indexer knows any history for it."""

    from .addresses import validate_bitcoin_address
    from .errors import ErrorContext, OperationKind
    from .indexer import IndexerClient
    from .retry import RetryExecutor

    try:
        validate_bitcoin_address(address)
        client = IndexerClient()
        has_history = RetryExecutor().execute_with_retry(
            lambda: client.has_transaction_history(address),
            ErrorContext(OperationKind.TRANSACTION_FETCH, "check_address", address),
        )
    except VestingTrackerError as e:
        return _report_error(e)

    print(f"{address}\tvalid\t{'has history' if has_history else 'no history'}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Reconcile a Bitcoin address's on-chain history against a vesting grant "
        "schedule. Loads VESTING_TRACKER_* settings from a local .env before running."
    ),
)


@app.command("track")
def track_cmd(
    address: Annotated[str, typer.Argument(help="Bitcoin address receiving the grants.")],
    *,
    start_date: str = typer.Option(..., "--start-date", help="Vesting start date (YYYY-MM-DD)."),
    amount_btc: float = typer.Option(..., "--amount-btc", help="Expected BTC per grant period."),
    grants: int | None = typer.Option(
        None, "--grants", help="Number of grant periods (1-20, default 5)."
    ),
    prices_json: Path | None = typer.Option(
        None,
        "--prices-json",
        help='JSON file of historical USD prices: {"YYYY-MM-DD": price}.',
        dir_okay=False,
    ),
    override: list[str] | None = typer.Option(
        None,
        "--override",
        help="Manual assignment TXID=YEAR or TXID=none; may be repeated.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
) -> None:
    """Fetch, match and print the annotated transaction history."""

    code = cmd_track(
        address,
        start_date=start_date,
        amount_btc=amount_btc,
        grants=grants,
        prices_json=prices_json,
        overrides=override or (),
        as_json=as_json,
    )
    raise typer.Exit(code)


@app.command("check-address")
def check_address_cmd(
    address: Annotated[str, typer.Argument(help="Bitcoin address to check.")],
) -> None:
    """Validate an address and check it has on-chain history."""

    raise typer.Exit(cmd_check_address(address))


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m vesting_tracker.cli`
    app()
