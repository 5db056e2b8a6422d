import pytest

from vesting_tracker.addresses import (
    is_valid_bitcoin_address,
    validate_bitcoin_address,
    validate_txid,
)
from vesting_tracker.errors import ErrorCode, ValidationError


@pytest.mark.parametrize(
    "address",
    [
        "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa",  # P2PKH
        "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy",  # P2SH
        "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh",  # bech32
        "bc1p5d7rjq7g6rdk2yhzks9smlaqtedr4dekq08ge8ztwac72sfr9rusxg3297",  # taproot
        "mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn",  # testnet P2PKH
        "2MzQwSSnBHWHqSAqtTVQ6v47XtaisrJa1Vc",  # testnet P2SH
        "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx",  # testnet bech32
    ],
)
def test_accepts_well_formed_addresses(address):
    assert is_valid_bitcoin_address(address)
    assert validate_bitcoin_address(address) == address


@pytest.mark.parametrize(
    "address",
    [
        "",
        "not-an-address",
        "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfN0",  # '0' is not base58
        "1short",
        "bc1QXY2KGDYGJRSQTZQ2N0YRF2493P83KKFJHX0WLH",  # uppercase bech32 payload
        "4J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy",  # unknown prefix
        "bc1" + "q" * 70,  # too long
        None,
        12345,
    ],
)
def test_rejects_malformed_addresses(address):
    assert not is_valid_bitcoin_address(address)
    with pytest.raises(ValidationError) as ei:
        validate_bitcoin_address(address)
    assert ei.value.code is ErrorCode.VALIDATION_ERROR
    assert ei.value.is_retryable is False
    assert ei.value.field == "Bitcoin address"


def test_validate_txid():
    good = "a" * 64
    assert validate_txid(good) == good
    for bad in ("a" * 63, "g" * 64, "", None):
        with pytest.raises(ValidationError):
            validate_txid(bad)
