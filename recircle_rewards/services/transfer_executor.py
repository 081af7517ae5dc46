"""
Executes a single transfer leg: submit, then poll for a receipt.
"""

from typing import Optional

import structlog

from recircle_rewards.core.exceptions import ReceiptTimeoutError, SubmissionError
from recircle_rewards.models import (
    LedgerReceipt,
    TransferLeg,
    TransferOutcome,
    TransferStatus,
    utcnow,
)
from recircle_rewards.services.ledger_client import LedgerClient


logger = structlog.get_logger(__name__)


class TransferExecutor:
    """
    Turns ledger calls into TransferOutcome values.

    Ledger failures never escape: a failed submission or an exhausted poll is a
    ``timed_out`` outcome, a reverted receipt is ``reverted``.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        poll_interval_ms: Optional[int] = None,
        max_poll_attempts: Optional[int] = None
    ):
        self.logger = logger.bind(service="transfer_executor")
        self.ledger = ledger
        self.poll_interval_ms = poll_interval_ms
        self.max_poll_attempts = max_poll_attempts

    async def execute_leg(self, leg: TransferLeg, recipient: str, amount: int) -> TransferOutcome:
        """
        Submit one transfer and wait for its receipt.

        Args:
            leg: Which leg of the distribution this is
            recipient: Destination address
            amount: Amount in minor units, must be positive

        Returns:
            TransferOutcome for the leg
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Transfer amount must be a positive integer, got {amount!r}")

        submitted_at = utcnow()
        try:
            tx_hash = await self.ledger.submit_transfer(recipient, amount)
        except SubmissionError as e:
            self.logger.error(
                "Transfer submission failed",
                leg=leg.value,
                recipient=recipient,
                amount=str(amount),
                error=e.message
            )
            return TransferOutcome(
                status=TransferStatus.TIMED_OUT,
                error_detail=e.message,
                leg=leg,
                submitted_at=submitted_at,
                resolved_at=utcnow(),
            )

        self.logger.info(
            "Transfer leg submitted",
            leg=leg.value,
            tx_hash=tx_hash,
            recipient=recipient,
            amount=str(amount)
        )
        return await self._await_receipt(leg, tx_hash, submitted_at)

    async def reconcile_leg(self, outcome: TransferOutcome) -> TransferOutcome:
        """
        Re-poll a timed-out leg that already has a transaction id.

        The transaction is never resubmitted; only its receipt is looked for.
        """
        if outcome.status != TransferStatus.TIMED_OUT or not outcome.tx_hash:
            raise ValueError("Only timed-out legs with a transaction id can be reconciled")

        self.logger.info(
            "Reconciling timed-out leg",
            leg=outcome.leg.value if outcome.leg else None,
            tx_hash=outcome.tx_hash
        )
        return await self._await_receipt(outcome.leg, outcome.tx_hash, outcome.submitted_at)

    async def _await_receipt(self, leg, tx_hash: str, submitted_at) -> TransferOutcome:
        try:
            receipt = await self.ledger.wait_for_receipt(
                tx_hash, self.poll_interval_ms, self.max_poll_attempts
            )
        except ReceiptTimeoutError as e:
            return TransferOutcome(
                status=TransferStatus.TIMED_OUT,
                tx_hash=tx_hash,
                error_detail=e.message,
                leg=leg,
                submitted_at=submitted_at,
                resolved_at=utcnow(),
            )

        return self._outcome_from_receipt(leg, tx_hash, receipt, submitted_at)

    def _outcome_from_receipt(
        self,
        leg: TransferLeg,
        tx_hash: str,
        receipt: LedgerReceipt,
        submitted_at
    ) -> TransferOutcome:
        if receipt.reverted:
            self.logger.warning(
                "Transfer reverted",
                leg=leg.value if leg else None,
                tx_hash=tx_hash,
                block_number=receipt.block_number
            )
            return TransferOutcome(
                status=TransferStatus.REVERTED,
                tx_hash=tx_hash,
                error_detail="Transaction reverted on chain",
                leg=leg,
                block_number=receipt.block_number,
                submitted_at=submitted_at,
                resolved_at=utcnow(),
            )

        return TransferOutcome(
            status=TransferStatus.CONFIRMED,
            tx_hash=tx_hash,
            leg=leg,
            block_number=receipt.block_number,
            submitted_at=submitted_at,
            resolved_at=utcnow(),
        )
