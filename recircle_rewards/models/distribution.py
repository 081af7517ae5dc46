"""
Distribution domain types: receipt context, split, per-leg outcomes and the
distribution record that is the unit of idempotency.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


PENDING_TX_PREFIX = "pending-"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class DistributionMode(str, Enum):
    """How a reward is distributed; derived from the confidence score."""
    IMMEDIATE = "immediate"
    PENDING = "pending"
    MANUAL_REVIEW = "manual_review"


class TransferStatus(str, Enum):
    """Outcome of a single transfer leg."""
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


class TransferLeg(str, Enum):
    """The two transfers that together fulfil one reward."""
    RECIPIENT = "recipient"
    FUND = "fund"


class DistributionStatus(str, Enum):
    """Overall state of a distribution record as reported to callers."""
    IN_FLIGHT = "in_flight"
    CONFIRMED = "confirmed"
    PARTIAL = "partial"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"
    PENDING = "pending"
    MANUAL_REVIEW = "manual_review"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    """Reviewer override decision for pending/manual-review records."""
    APPROVE = "approve"
    REJECT = "reject"


class ReceiptCategory(str, Enum):
    """Category hints attached to a receipt by the upstream classifier."""
    RIDE_SHARE = "ride_share"
    TRANSIT = "transit"
    RAIL = "rail"
    MICROMOBILITY = "micromobility"
    EV = "ev"
    CAR_SHARE = "car_share"
    UNKNOWN = "unknown"
    KNOWN_FRAUD_FLAGGED = "known-fraud-flagged"


@dataclass(frozen=True)
class ReceiptContext:
    """Validated receipt handed to the engine. Amounts are token minor units."""
    receipt_id: str
    recipient_address: str
    total_reward_amount: int
    confidence_score: float
    category: str = ReceiptCategory.UNKNOWN.value
    store_name: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "recipient_address": self.recipient_address,
            # Kept as a string: wei amounts overflow JSON doubles
            "total_reward_amount": str(self.total_reward_amount),
            "confidence_score": self.confidence_score,
            "category": self.category,
            "store_name": self.store_name,
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReceiptContext":
        return cls(
            receipt_id=data["receipt_id"],
            recipient_address=data["recipient_address"],
            total_reward_amount=int(data["total_reward_amount"]),
            confidence_score=float(data["confidence_score"]),
            category=data.get("category") or ReceiptCategory.UNKNOWN.value,
            store_name=data.get("store_name"),
            user_id=data.get("user_id"),
        )


@dataclass(frozen=True)
class SplitResult:
    """Recipient/fund split of a total reward."""
    recipient_amount: int
    fund_amount: int

    @property
    def total(self) -> int:
        return self.recipient_amount + self.fund_amount

    def amount_for(self, leg: TransferLeg) -> int:
        return self.recipient_amount if leg == TransferLeg.RECIPIENT else self.fund_amount

    def to_dict(self) -> Dict[str, str]:
        return {
            "recipient_amount": str(self.recipient_amount),
            "fund_amount": str(self.fund_amount),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitResult":
        return cls(int(data["recipient_amount"]), int(data["fund_amount"]))


@dataclass(frozen=True)
class LedgerReceipt:
    """Confirmation record returned by a Thor node for an executed transaction."""
    tx_id: str
    reverted: bool
    block_number: Optional[int] = None
    block_id: Optional[str] = None
    gas_used: Optional[int] = None
    paid: Optional[int] = None
    gas_payer: Optional[str] = None

    @classmethod
    def from_thor(cls, tx_id: str, data: Dict[str, Any]) -> "LedgerReceipt":
        meta = data.get("meta") or {}
        paid = data.get("paid")
        return cls(
            tx_id=meta.get("txID") or tx_id,
            reverted=bool(data.get("reverted")),
            block_number=meta.get("blockNumber"),
            block_id=meta.get("blockID"),
            gas_used=data.get("gasUsed"),
            paid=int(paid, 16) if isinstance(paid, str) else paid,
            gas_payer=data.get("gasPayer"),
        )


@dataclass(frozen=True)
class TransferOutcome:
    """Result of one transfer leg."""
    status: TransferStatus
    tx_hash: Optional[str] = None
    error_detail: Optional[str] = None
    leg: Optional[TransferLeg] = None
    block_number: Optional[int] = None
    submitted_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_settled(self) -> bool:
        """Confirmed, reverted and skipped legs never change again."""
        return self.status in (TransferStatus.CONFIRMED, TransferStatus.REVERTED, TransferStatus.SKIPPED)

    @property
    def is_placeholder(self) -> bool:
        return bool(self.tx_hash and self.tx_hash.startswith(PENDING_TX_PREFIX))

    @classmethod
    def skipped(
        cls,
        leg: TransferLeg,
        tx_hash: Optional[str] = None,
        error_detail: Optional[str] = None
    ) -> "TransferOutcome":
        now = utcnow()
        return cls(
            status=TransferStatus.SKIPPED,
            tx_hash=tx_hash,
            error_detail=error_detail,
            leg=leg,
            resolved_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "error_detail": self.error_detail,
            "leg": self.leg.value if self.leg else None,
            "block_number": self.block_number,
            "submitted_at": _iso(self.submitted_at),
            "resolved_at": _iso(self.resolved_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferOutcome":
        return cls(
            status=TransferStatus(data["status"]),
            tx_hash=data.get("tx_hash"),
            error_detail=data.get("error_detail"),
            leg=TransferLeg(data["leg"]) if data.get("leg") else None,
            block_number=data.get("block_number"),
            submitted_at=_parse_dt(data.get("submitted_at")),
            resolved_at=_parse_dt(data.get("resolved_at")),
        )


@dataclass(frozen=True)
class DistributionRecord:
    """
    Engine output and unit of idempotency, keyed by receipt id.

    A record is replaced (never mutated) as its legs resolve. Once terminal it
    is returned unchanged by every later ``distribute`` call.
    """
    receipt_id: str
    mode: DistributionMode
    split: SplitResult
    context: ReceiptContext
    fund_address: str
    recipient_outcome: Optional[TransferOutcome] = None
    fund_outcome: Optional[TransferOutcome] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    attempt: int = 1
    reason: Optional[str] = None
    review_decision: Optional[ReviewDecision] = None
    reviewed_by: Optional[str] = None
    review_emitted: Optional[bool] = None

    def outcome_for(self, leg: TransferLeg) -> Optional[TransferOutcome]:
        return self.recipient_outcome if leg == TransferLeg.RECIPIENT else self.fund_outcome

    def address_for(self, leg: TransferLeg) -> str:
        return self.context.recipient_address if leg == TransferLeg.RECIPIENT else self.fund_address

    def with_outcome(self, leg: TransferLeg, outcome: TransferOutcome) -> "DistributionRecord":
        if leg == TransferLeg.RECIPIENT:
            return replace(self, recipient_outcome=outcome, updated_at=utcnow())
        return replace(self, fund_outcome=outcome, updated_at=utcnow())

    @property
    def legs(self) -> List[Optional[TransferOutcome]]:
        return [self.recipient_outcome, self.fund_outcome]

    @property
    def unresolved_legs(self) -> List[TransferLeg]:
        """Legs that still need a submission or a receipt, in execution order."""
        return [
            leg for leg in (TransferLeg.RECIPIENT, TransferLeg.FUND)
            if self.outcome_for(leg) is None or not self.outcome_for(leg).is_settled
        ]

    @property
    def status(self) -> DistributionStatus:
        if self.review_decision == ReviewDecision.REJECT:
            return DistributionStatus.REJECTED
        if self.mode == DistributionMode.PENDING:
            return DistributionStatus.PENDING
        if self.mode == DistributionMode.MANUAL_REVIEW:
            return DistributionStatus.MANUAL_REVIEW
        if self.recipient_outcome is None or self.fund_outcome is None:
            return DistributionStatus.IN_FLIGHT

        statuses = [outcome.status for outcome in self.legs]
        if all(s in (TransferStatus.CONFIRMED, TransferStatus.SKIPPED) for s in statuses):
            return DistributionStatus.CONFIRMED
        if TransferStatus.CONFIRMED in statuses:
            return DistributionStatus.PARTIAL
        if TransferStatus.TIMED_OUT in statuses:
            return DistributionStatus.TIMED_OUT
        return DistributionStatus.REVERTED

    @property
    def is_terminal(self) -> bool:
        if self.mode != DistributionMode.IMMEDIATE or self.review_decision == ReviewDecision.REJECT:
            return True
        return not self.unresolved_legs

    @property
    def review_undelivered(self) -> bool:
        """Manual-review record whose ticket never reached the review sink."""
        return (
            self.mode == DistributionMode.MANUAL_REVIEW
            and self.review_decision is None
            and self.review_emitted is False
        )

    @property
    def is_partial(self) -> bool:
        """One leg confirmed while the other reverted or timed out."""
        return self.status == DistributionStatus.PARTIAL

    def integrity_alert(self) -> Optional[Dict[str, Any]]:
        """Details an operator needs to repair a partial distribution, or None."""
        if not self.is_partial:
            return None

        legs = {}
        failed = []
        for leg in (TransferLeg.RECIPIENT, TransferLeg.FUND):
            outcome = self.outcome_for(leg)
            legs[leg.value] = {
                "address": self.address_for(leg),
                "amount": str(self.split.amount_for(leg)),
                "status": outcome.status.value,
                "tx_hash": outcome.tx_hash,
                "error_detail": outcome.error_detail,
            }
            if outcome.status in (TransferStatus.REVERTED, TransferStatus.TIMED_OUT):
                failed.append(leg.value)

        return {
            "receipt_id": self.receipt_id,
            "attempt": self.attempt,
            "failed_legs": failed,
            "legs": legs,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "mode": self.mode.value,
            "status": self.status.value,
            "terminal": self.is_terminal,
            "split": self.split.to_dict(),
            "context": self.context.to_dict(),
            "fund_address": self.fund_address,
            "recipient_outcome": self.recipient_outcome.to_dict() if self.recipient_outcome else None,
            "fund_outcome": self.fund_outcome.to_dict() if self.fund_outcome else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "attempt": self.attempt,
            "reason": self.reason,
            "review_decision": self.review_decision.value if self.review_decision else None,
            "reviewed_by": self.reviewed_by,
            "review_emitted": self.review_emitted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionRecord":
        recipient = data.get("recipient_outcome")
        fund = data.get("fund_outcome")
        decision = data.get("review_decision")
        return cls(
            receipt_id=data["receipt_id"],
            mode=DistributionMode(data["mode"]),
            split=SplitResult.from_dict(data["split"]),
            context=ReceiptContext.from_dict(data["context"]),
            fund_address=data["fund_address"],
            recipient_outcome=TransferOutcome.from_dict(recipient) if recipient else None,
            fund_outcome=TransferOutcome.from_dict(fund) if fund else None,
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            updated_at=_parse_dt(data.get("updated_at")),
            attempt=int(data.get("attempt", 1)),
            reason=data.get("reason"),
            review_decision=ReviewDecision(decision) if decision else None,
            reviewed_by=data.get("reviewed_by"),
            review_emitted=data.get("review_emitted"),
        )
