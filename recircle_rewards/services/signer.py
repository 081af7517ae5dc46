"""
Distributor credential: builds and signs Thor transactions with thor-devkit.
"""

import secrets
from dataclasses import dataclass
from typing import Any, Dict, List

import structlog
from thor_devkit import cry, transaction

from recircle_rewards.core.exceptions import ConfigurationError


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SignedTransaction:
    """Encoded, signed transaction ready for ``POST /transactions``."""
    tx_id: str
    raw: str
    origin: str


class ThorTransactionSigner:
    """
    Signs single-origin Thor transactions with the distributor private key.

    Every transaction gets a fresh random nonce; Thor has no sequential account
    nonce, but the engine still submits legs one at a time.
    """

    def __init__(
        self,
        private_key: str,
        chain_tag: int,
        gas: int = 50000,
        expiration: int = 32,
        gas_price_coef: int = 0
    ):
        self._private_key = self._parse_private_key(private_key)
        self.chain_tag = chain_tag
        self.gas = gas
        self.expiration = expiration
        self.gas_price_coef = gas_price_coef

        public_key = cry.secp256k1.derive_publicKey(self._private_key)
        self.address = "0x" + cry.public_key_to_address(public_key).hex()

        logger.info(
            "Distributor signer initialized",
            distributor=self.address,
            chain_tag=hex(chain_tag)
        )

    @staticmethod
    def _parse_private_key(private_key: str) -> bytes:
        if not private_key:
            raise ConfigurationError("Distributor private key is not configured")

        clean_key = private_key[2:] if private_key.startswith("0x") else private_key
        if len(clean_key) != 64:
            raise ConfigurationError(
                "Invalid distributor private key length",
                {"length": len(clean_key), "expected": 64}
            )
        try:
            key_bytes = bytes.fromhex(clean_key)
        except ValueError:
            raise ConfigurationError("Distributor private key contains non-hex characters")

        try:
            cry.secp256k1.derive_publicKey(key_bytes)
        except ValueError:
            raise ConfigurationError("Distributor private key is not a valid secp256k1 key")
        return key_bytes

    def build_body(self, clauses: List[Dict[str, Any]], block_ref: str) -> Dict[str, Any]:
        """Transaction body for the given clauses, anchored at ``block_ref``."""
        return {
            "chainTag": self.chain_tag,
            "blockRef": block_ref,
            "expiration": self.expiration,
            "clauses": clauses,
            "gasPriceCoef": self.gas_price_coef,
            "gas": self.gas,
            "dependsOn": None,
            "nonce": secrets.randbits(64),
        }

    def sign(self, clauses: List[Dict[str, Any]], block_ref: str) -> SignedTransaction:
        """
        Build, sign and encode a transaction.

        Args:
            clauses: Thor clauses (to, value, data)
            block_ref: First 8 bytes of a recent block id, 0x-prefixed

        Returns:
            SignedTransaction with id and raw hex payload
        """
        tx = transaction.Transaction(self.build_body(clauses, block_ref))
        signature = cry.secp256k1.sign(tx.get_signing_hash(), self._private_key)
        tx.set_signature(signature)

        tx_id = tx.get_id()
        return SignedTransaction(
            tx_id=tx_id if tx_id.startswith("0x") else "0x" + tx_id,
            raw="0x" + tx.encode().hex(),
            origin=self.address,
        )
