"""
Domain models for reward distribution.
"""

from .distribution import (
    PENDING_TX_PREFIX,
    DistributionMode,
    DistributionRecord,
    DistributionStatus,
    LedgerReceipt,
    ReceiptCategory,
    ReceiptContext,
    ReviewDecision,
    SplitResult,
    TransferLeg,
    TransferOutcome,
    TransferStatus,
    utcnow,
)

__all__ = [
    "DistributionMode",
    "DistributionRecord",
    "DistributionStatus",
    "LedgerReceipt",
    "ReceiptCategory",
    "ReceiptContext",
    "ReviewDecision",
    "SplitResult",
    "TransferLeg",
    "TransferOutcome",
    "TransferStatus",
    "PENDING_TX_PREFIX",
    "utcnow",
]
