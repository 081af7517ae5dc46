"""
Ledger client interface used by the transfer executor.
"""

from abc import ABC, abstractmethod
from typing import Optional

from recircle_rewards.models import LedgerReceipt


class LedgerClient(ABC):
    """Submits token transfers and observes their receipts."""

    @abstractmethod
    async def submit_transfer(self, to: str, amount: int) -> str:
        """
        Sign and submit a token transfer.

        Returns:
            Transaction id accepted by the ledger

        Raises:
            SubmissionError: If the transfer could not be submitted
        """

    @abstractmethod
    async def wait_for_receipt(
        self,
        tx_id: str,
        poll_interval_ms: Optional[int] = None,
        max_attempts: Optional[int] = None
    ) -> LedgerReceipt:
        """
        Poll until a receipt is observed.

        Raises:
            ReceiptTimeoutError: If no receipt appears within the polling budget
        """

    @abstractmethod
    async def get_receipt(self, tx_id: str) -> Optional[LedgerReceipt]:
        """Single receipt lookup; None while the transaction is unmined."""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Token balance of ``address`` in minor units."""

    async def close(self):
        """Release network resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
