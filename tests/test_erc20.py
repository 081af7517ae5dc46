"""
Test ERC-20 call data encoding.
"""

import pytest

from recircle_rewards.core.exceptions import InvalidAddressError
from recircle_rewards.services.erc20 import (
    decode_uint256,
    encode_balance_of,
    encode_transfer,
    transfer_clause,
)


RECIPIENT = "0x" + "Ab" * 20


def test_encode_transfer_layout():
    data = encode_transfer(RECIPIENT, 7 * 10 ** 18)

    assert data.startswith("0xa9059cbb")
    assert len(data) == 2 + 8 + 64 + 64
    assert data[10:74] == "0" * 24 + "ab" * 20
    assert int(data[74:], 16) == 7 * 10 ** 18


def test_encode_balance_of_layout():
    data = encode_balance_of(RECIPIENT)

    assert data == "0x70a08231" + "0" * 24 + "ab" * 20


def test_transfer_clause():
    clause = transfer_clause("0x" + "1" * 40, RECIPIENT, 3)

    assert clause["to"] == "0x" + "1" * 40
    assert clause["value"] == 0
    assert clause["data"] == encode_transfer(RECIPIENT, 3)


def test_decode_uint256():
    assert decode_uint256("0x" + format(12345, "064x")) == 12345
    assert decode_uint256("0x") == 0


def test_invalid_inputs():
    with pytest.raises(InvalidAddressError):
        encode_transfer("0x1234", 1)
    with pytest.raises(ValueError):
        encode_transfer(RECIPIENT, -1)
    with pytest.raises(ValueError):
        encode_transfer(RECIPIENT, 2 ** 256)


if __name__ == "__main__":
    pytest.main([__file__])
