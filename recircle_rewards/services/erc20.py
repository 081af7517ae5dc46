"""
Minimal ERC-20 ABI encoding for VIP-180/ERC-20 token clauses on Thor.
"""

from typing import Any, Dict

from recircle_rewards.utils.validation import VeChainValidator


# keccak256("transfer(address,uint256)")[:4]
TRANSFER_SELECTOR = "a9059cbb"
# keccak256("balanceOf(address)")[:4]
BALANCE_OF_SELECTOR = "70a08231"

UINT256_MAX = 2 ** 256 - 1


def _encode_address(address: str) -> str:
    return VeChainValidator.require_address(address)[2:].rjust(64, "0")


def _encode_uint256(value: int) -> str:
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "x").rjust(64, "0")


def encode_transfer(to: str, amount: int) -> str:
    """ABI-encode ``transfer(to, amount)`` call data."""
    return "0x" + TRANSFER_SELECTOR + _encode_address(to) + _encode_uint256(amount)


def encode_balance_of(owner: str) -> str:
    """ABI-encode ``balanceOf(owner)`` call data."""
    return "0x" + BALANCE_OF_SELECTOR + _encode_address(owner)


def decode_uint256(data: str) -> int:
    """Decode a single uint256 return value."""
    payload = data[2:] if data.startswith("0x") else data
    if not payload:
        return 0
    return int(payload[:64], 16)


def transfer_clause(token_address: str, to: str, amount: int) -> Dict[str, Any]:
    """Single Thor clause calling ``transfer`` on the token contract."""
    return {
        "to": VeChainValidator.require_address(token_address),
        "value": 0,
        "data": encode_transfer(to, amount),
    }
