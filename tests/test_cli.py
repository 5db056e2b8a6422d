import json

import pytest
from helpers.chain import ADDRESS, COIN, FakeUrlopen, http_error, txid, wire_tx
from typer.testing import CliRunner

from vesting_tracker import cli
from vesting_tracker.errors import ValidationError

HISTORY = [
    wire_tx(txid(1), "2023-01-01", COIN),
    wire_tx(txid(2), "2023-06-01", 70_000_000),
]


@pytest.fixture
def indexer(monkeypatch):
    """Point the default indexer client at a scripted ``urlopen``."""

    def _install(*script):
        fake = FakeUrlopen(*script)
        monkeypatch.setattr("urllib.request.urlopen", fake)
        return fake

    monkeypatch.setenv("VESTING_TRACKER_INDEXER_URL", "https://indexer.test/api")
    # Keep the CLI's stderr handler quiet on success paths.
    monkeypatch.setenv("VESTING_TRACKER_LOG_LEVEL", "ERROR")
    return _install


def test_track_json_report(indexer, capsys):
    fake = indexer(HISTORY)
    code = cli.cmd_track(ADDRESS, start_date="2023-01-01", amount_btc=1.0, grants=3, as_json=True)
    assert code == 0
    assert fake.urls == [f"https://indexer.test/api/address/{ADDRESS}/txs"]

    payload = json.loads(capsys.readouterr().out)
    txs = payload["annotatedTransactions"]
    assert [(t["txid"], t["grantYear"], t["type"]) for t in txs] == [
        (txid(1), 1, "Annual Grant"),
        (txid(2), None, "Other Transaction"),
    ]
    assert txs[0]["matchScore"] == pytest.approx(1.0)
    assert [g["isMatched"] for g in payload["expectedGrants"]] == [True, False, False]
    assert payload["matchingSummary"]["matchedGrants"] == 1
    assert payload["address"] == ADDRESS
    assert payload["partialError"] is None


def test_track_table_output_with_prices(indexer, capsys, tmp_path):
    indexer(HISTORY)
    prices = tmp_path / "prices.json"
    prices.write_text(json.dumps({"2023-01-01": 16_625.08}), encoding="utf-8")

    code = cli.cmd_track(
        ADDRESS, start_date="2023-01-01", amount_btc=1.0, grants=3, prices_json=prices
    )
    assert code == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        f"2023-01-01\t{txid(1)}\t1.00000000\tAnnual Grant\t1\t1.000\t16625.08",
        f"2023-06-01\t{txid(2)}\t0.70000000\tOther Transaction\t-\t-\t-",
        "matched 1/3 grants; 1/2 incoming transactions matched",
    ]


def test_track_applies_overrides(indexer, capsys):
    indexer(HISTORY)
    code = cli.cmd_track(
        ADDRESS,
        start_date="2023-01-01",
        amount_btc=1.0,
        grants=3,
        overrides=[f"{txid(2)}=1"],
        as_json=True,
    )
    assert code == 0
    txs = json.loads(capsys.readouterr().out)["annotatedTransactions"]
    assert [(t["grantYear"], t["isManuallyAnnotated"]) for t in txs] == [
        (None, False),
        (1, True),
    ]


def test_track_invalid_override_is_rejected_before_fetch(indexer, capsys):
    fake = indexer(HISTORY)
    code = cli.cmd_track(ADDRESS, start_date="2023-01-01", amount_btc=1.0, overrides=["abc"])
    assert code == 2
    assert fake.calls == 0
    assert "Invalid Input" in capsys.readouterr().err


def test_track_missing_price_file(indexer, capsys, tmp_path):
    fake = indexer(HISTORY)
    code = cli.cmd_track(
        ADDRESS, start_date="2023-01-01", amount_btc=1.0, prices_json=tmp_path / "nope.json"
    )
    assert code == 1
    assert fake.calls == 0
    assert "File not found" in capsys.readouterr().err


def test_track_price_file_must_be_object(indexer, capsys, tmp_path):
    indexer(HISTORY)
    prices = tmp_path / "prices.json"
    prices.write_text("[1, 2]", encoding="utf-8")
    code = cli.cmd_track(ADDRESS, start_date="2023-01-01", amount_btc=1.0, prices_json=prices)
    assert code == 2
    assert "price file" in capsys.readouterr().err


def test_track_not_found_is_runtime_failure(indexer, capsys):
    indexer(http_error("https://indexer.test/api", 404, "Not Found"))
    code = cli.cmd_track(ADDRESS, start_date="2023-01-01", amount_btc=1.0)
    assert code == 1
    assert "Connection Error" in capsys.readouterr().err


@pytest.mark.parametrize(
    "script, expected",
    [
        ((HISTORY,), "has history"),
        (([],), "no history"),
        ((http_error("https://indexer.test/api", 404, "Not Found"),), "no history"),
    ],
)
def test_check_address(indexer, capsys, script, expected):
    indexer(*script)
    assert cli.cmd_check_address(ADDRESS) == 0
    assert capsys.readouterr().out.strip() == f"{ADDRESS}\tvalid\t{expected}"


def test_check_address_rejects_malformed_input(indexer, capsys):
    fake = indexer(HISTORY)
    assert cli.cmd_check_address("bc1-nope") == 2
    assert fake.calls == 0


def test_parse_overrides():
    assert cli._parse_overrides(["a=2", " b = none ", "c=-", "d=NULL"]) == {
        "a": 2,
        "b": None,
        "c": None,
        "d": None,
    }
    for bad in ("a", "a=", "=2", "a=two"):
        with pytest.raises(ValidationError):
            cli._parse_overrides([bad])


@pytest.mark.parametrize(
    "value, expected",
    [(None, 1), ("8", 8), ("100", 32), ("0", 1), ("-3", 1), ("many", 1)],
)
def test_resolve_scoring_workers(monkeypatch, value, expected):
    if value is not None:
        monkeypatch.setenv("VESTING_TRACKER_SCORING_WORKERS", value)
    assert cli._resolve_scoring_workers() == expected


# ---- Typer wiring ------------------------------------------------------------

runner = CliRunner()


def test_cli_track_json(indexer):
    indexer(HISTORY)
    args = ["track", ADDRESS, "--start-date", "2023-01-01", "--amount-btc", "1", "--grants", "3"]
    result = runner.invoke(cli.app, [*args, "--json"])
    assert result.exit_code == 0, result.output
    assert '"grantYear": 1' in result.output


def test_cli_track_repeated_overrides(indexer):
    indexer(HISTORY)
    result = runner.invoke(
        cli.app,
        [
            "track",
            ADDRESS,
            "--start-date",
            "2023-01-01",
            "--amount-btc",
            "1",
            "--override",
            f"{txid(1)}=none",
            "--override",
            f"{txid(2)}=2",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "matched 1/5 grants; 1/2 incoming transactions matched" in result.output


def test_cli_invalid_address_exits_with_validation_code(indexer):
    fake = indexer(HISTORY)
    result = runner.invoke(
        cli.app, ["track", "not-an-address", "--start-date", "2023-01-01", "--amount-btc", "1"]
    )
    assert result.exit_code == 2
    assert "Invalid Input" in result.output
    assert fake.calls == 0


def test_cli_future_start_date_exits_with_validation_code(indexer):
    indexer(HISTORY)
    result = runner.invoke(
        cli.app, ["track", ADDRESS, "--start-date", "2999-01-01", "--amount-btc", "1"]
    )
    assert result.exit_code == 2
    assert "vesting start date" in result.output


def test_cli_check_address(indexer):
    indexer(HISTORY)
    result = runner.invoke(cli.app, ["check-address", ADDRESS])
    assert result.exit_code == 0
    assert "has history" in result.output
