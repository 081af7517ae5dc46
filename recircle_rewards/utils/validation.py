"""
Ledger data validation utilities.
Provides validation functions for VeChain addresses and transaction ids.
"""

import re

from recircle_rewards.core.exceptions import InvalidAddressError


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
TX_ID_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


class VeChainValidator:
    """Validator for VeChain Thor ledger data."""

    @staticmethod
    def is_valid_address(address: str) -> bool:
        """
        Validate if a string is a well-formed 20-byte account address.

        Args:
            address: String to validate

        Returns:
            True if valid, False otherwise
        """
        return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address))

    @staticmethod
    def is_valid_tx_id(tx_id: str) -> bool:
        """Validate a 32-byte transaction id."""
        return isinstance(tx_id, str) and bool(TX_ID_PATTERN.match(tx_id))

    @staticmethod
    def require_address(address: str) -> str:
        """
        Return the address lower-cased, or raise if it is malformed.

        Raises:
            InvalidAddressError: If the address is not 0x-prefixed 40 hex chars
        """
        if not VeChainValidator.is_valid_address(address):
            raise InvalidAddressError(address)
        return address.lower()

