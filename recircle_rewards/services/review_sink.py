"""
Manual review sinks: where low-confidence receipts go for a human decision.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import aiohttp
import structlog

from recircle_rewards.core.exceptions import ReviewSinkError
from recircle_rewards.models import DistributionRecord, utcnow
from recircle_rewards.services.receipt_categories import review_type_for


logger = structlog.get_logger(__name__)


TRANSPORTATION_TYPES = {
    "PUBLIC TRANSIT VALIDATION": "public_transit",
    "RAIL TRANSIT VALIDATION": "rail_transit",
    "SUSTAINABLE TRANSPORT VALIDATION": "sustainable_transport",
}


@dataclass(frozen=True)
class ReviewTicket:
    """A receipt awaiting a reviewer's approve/reject decision."""
    receipt_id: str
    recipient_address: str
    total_reward_amount: int
    recipient_amount: int
    fund_amount: int
    confidence_score: float
    category: str
    reason: str
    review_type: str
    review_reason: str
    user_id: Optional[str] = None
    store_name: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_record(cls, record: DistributionRecord) -> "ReviewTicket":
        context = record.context
        review_type, review_reason = review_type_for(context.category)
        return cls(
            receipt_id=record.receipt_id,
            recipient_address=context.recipient_address,
            total_reward_amount=context.total_reward_amount,
            recipient_amount=record.split.recipient_amount,
            fund_amount=record.split.fund_amount,
            confidence_score=context.confidence_score,
            category=context.category,
            reason=record.reason or "manual review required",
            review_type=review_type,
            review_reason=review_reason,
            user_id=context.user_id,
            store_name=context.store_name,
        )

    @property
    def transportation_type(self) -> str:
        return TRANSPORTATION_TYPES.get(self.review_type, "general_transportation")

    def to_payload(self) -> Dict[str, Any]:
        """JSON body posted to review webhooks."""
        return {
            "event_type": "manual_review",
            "receipt_id": self.receipt_id,
            "user_id": self.user_id,
            "wallet_address": self.recipient_address,
            "store_name": self.store_name or "Unknown Store",
            "receipt_category": self.category,
            "transportation_type": self.transportation_type,
            "confidence_score": self.confidence_score,
            "total_reward_amount": str(self.total_reward_amount),
            "recipient_amount": str(self.recipient_amount),
            "fund_amount": str(self.fund_amount),
            "reason": self.reason,
            "review_reason": self.review_reason,
            "action_required": f"NEEDS REVIEW - {self.review_type}",
            "pending_approval": True,
            "timestamp": self.created_at.isoformat(),
        }


class ReviewSink(ABC):
    """Destination for manual review tickets."""

    @abstractmethod
    async def emit(self, ticket: ReviewTicket) -> None:
        """
        Deliver a ticket.

        Raises:
            ReviewSinkError: If the ticket could not be delivered
        """

    async def close(self) -> None:
        """Release resources held by the sink."""


class LoggingReviewSink(ReviewSink):
    """Writes tickets to the structured log; the default when no webhook is set."""

    def __init__(self):
        self.logger = logger.bind(service="review_sink", sink="logging")

    async def emit(self, ticket: ReviewTicket) -> None:
        self.logger.warning("Manual review required", **ticket.to_payload())


class QueueReviewSink(ReviewSink):
    """Puts tickets on an asyncio queue for an in-process consumer."""

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue = queue if queue is not None else asyncio.Queue()

    async def emit(self, ticket: ReviewTicket) -> None:
        try:
            self.queue.put_nowait(ticket)
        except asyncio.QueueFull:
            raise ReviewSinkError(ticket.receipt_id, "review queue is full")


class WebhookReviewSink(ReviewSink):
    """POSTs tickets as JSON to an HTTP endpoint (e.g. a spreadsheet webhook)."""

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 10.0
    ):
        self.logger = logger.bind(service="review_sink", sink="webhook")
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def emit(self, ticket: ReviewTicket) -> None:
        session = await self._get_session()
        try:
            async with session.post(self.url, json=ticket.to_payload()) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise ReviewSinkError(
                        ticket.receipt_id,
                        f"webhook returned HTTP {response.status}: {body[:200]}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ReviewSinkError(ticket.receipt_id, str(e) or type(e).__name__) from e

        self.logger.info(
            "Review ticket delivered",
            receipt_id=ticket.receipt_id,
            review_type=ticket.review_type
        )

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None
