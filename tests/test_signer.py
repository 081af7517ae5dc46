"""
Test distributor transaction signing.
"""

import pytest
from thor_devkit import cry

from recircle_rewards.core.exceptions import ConfigurationError
from recircle_rewards.services.erc20 import transfer_clause
from recircle_rewards.services.signer import ThorTransactionSigner


PRIVATE_KEY = "7582be841ca040aa940fff6c05773129e135623e41acce3e0b8ba520dc1ae26a"
BLOCK_REF = "0x00000000aabbccdd"


@pytest.fixture
def signer():
    return ThorTransactionSigner(PRIVATE_KEY, chain_tag=0x27)


def test_address_derived_from_key(signer):
    public_key = cry.secp256k1.derive_publicKey(bytes.fromhex(PRIVATE_KEY))
    expected = "0x" + cry.public_key_to_address(public_key).hex()

    assert signer.address == expected
    assert ThorTransactionSigner("0x" + PRIVATE_KEY, chain_tag=0x27).address == expected


def test_sign_produces_encoded_transaction(signer):
    clause = transfer_clause("0x" + "1" * 40, "0x" + "a" * 40, 7)

    signed = signer.sign([clause], BLOCK_REF)

    assert signed.raw.startswith("0x")
    assert len(signed.tx_id) == 66
    assert signed.tx_id.startswith("0x")
    assert signed.origin == signer.address


def test_each_signature_uses_fresh_nonce(signer):
    clause = transfer_clause("0x" + "1" * 40, "0x" + "a" * 40, 7)

    first = signer.sign([clause], BLOCK_REF)
    second = signer.sign([clause], BLOCK_REF)

    assert first.tx_id != second.tx_id


def test_body_uses_configured_parameters():
    signer = ThorTransactionSigner(PRIVATE_KEY, chain_tag=0x4a, gas=60000, expiration=64)

    body = signer.build_body([], BLOCK_REF)

    assert body["chainTag"] == 0x4a
    assert body["gas"] == 60000
    assert body["expiration"] == 64
    assert body["blockRef"] == BLOCK_REF
    assert body["dependsOn"] is None


@pytest.mark.parametrize("key", ["", "abc", "zz" * 32, "0" * 64, "f" * 64])
def test_invalid_keys_rejected(key):
    with pytest.raises(ConfigurationError):
        ThorTransactionSigner(key, chain_tag=0x27)


def test_key_validated_against_curve():
    """Keys outside the secp256k1 range fail at construction, not at signing time."""
    with pytest.raises(ConfigurationError) as exc_info:
        ThorTransactionSigner("0x" + "f" * 64, chain_tag=0x27)

    assert "secp256k1" in exc_info.value.message

    signer = ThorTransactionSigner(PRIVATE_KEY, chain_tag=0x27)
    clause = transfer_clause("0x" + "1" * 40, "0x" + "a" * 40, 1)
    assert signer.sign([clause], BLOCK_REF).tx_id.startswith("0x")


if __name__ == "__main__":
    pytest.main([__file__])
