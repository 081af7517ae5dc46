"""
Distribution Service - routes validated receipts and moves reward tokens.

For every receipt the service decides a mode from the confidence score, splits
the reward between the recipient and the operating fund, and either executes
both transfer legs one after the other, records pending-approval placeholders,
or hands the receipt to manual review. The distribution store keeps one record
per receipt id so repeated calls never pay twice.
"""

import uuid
from dataclasses import replace
from typing import Optional

import structlog

from recircle_rewards.cache.distribution_store import DistributionStore
from recircle_rewards.cache.validation_cache import ValidationCache
from recircle_rewards.core.exceptions import (
    ConfigurationError,
    DistributionNotFoundError,
    InvalidTransitionError,
    ReviewSinkError,
    ValidationError,
)
from recircle_rewards.models import (
    PENDING_TX_PREFIX,
    DistributionMode,
    DistributionRecord,
    ReceiptCategory,
    ReceiptContext,
    ReviewDecision,
    TransferLeg,
    TransferOutcome,
    TransferStatus,
    utcnow,
)
from recircle_rewards.services.confidence_router import DEFAULT_POLICY, RoutingPolicy, route_receipt
from recircle_rewards.services.receipt_categories import categorize_store, normalize_category
from recircle_rewards.services.review_sink import LoggingReviewSink, ReviewSink, ReviewTicket
from recircle_rewards.services.split_calculator import DEFAULT_SPLIT_RATIO, SplitRatio, calculate_split
from recircle_rewards.services.transfer_executor import TransferExecutor
from recircle_rewards.utils.validation import VeChainValidator


logger = structlog.get_logger(__name__)


def pending_placeholder(leg: TransferLeg, receipt_id: str) -> str:
    """Synthetic transaction id for a leg awaiting approval."""
    return f"{PENDING_TX_PREFIX}{leg.value}-{receipt_id}-{uuid.uuid4().hex[:9]}"


class DistributionService:
    """Service orchestrating reward distributions for validated receipts."""

    def __init__(
        self,
        store: DistributionStore,
        executor: TransferExecutor,
        fund_address: str,
        review_sink: Optional[ReviewSink] = None,
        policy: RoutingPolicy = DEFAULT_POLICY,
        split_ratio: SplitRatio = DEFAULT_SPLIT_RATIO,
        validation_cache: Optional[ValidationCache] = None
    ):
        self.logger = logger.bind(service="distribution_service")
        self.store = store
        self.executor = executor
        self.fund_address = VeChainValidator.require_address(fund_address)
        self.review_sink = review_sink or LoggingReviewSink()
        self.policy = policy
        self.split_ratio = split_ratio
        self.validation_cache = validation_cache

    async def distribute(self, context: ReceiptContext) -> DistributionRecord:
        """
        Distribute the reward for a validated receipt.

        Args:
            context: Validated receipt with amount in minor units and confidence score

        Returns:
            The stored DistributionRecord. Terminal records are returned
            unchanged; a record another caller is executing is returned as seen.

        Raises:
            InvalidAmountError: Non-positive or malformed reward amount
            InvalidConfidenceError: Confidence score outside [0, 1]
            InvalidAddressError: Malformed recipient address
        """
        context = replace(
            context,
            recipient_address=VeChainValidator.require_address(context.recipient_address),
            category=normalize_category(context.category),
        )

        decision = route_receipt(context.confidence_score, context.category, self.policy)
        split = calculate_split(context.total_reward_amount, self.split_ratio)
        candidate = self._build_record(context, decision.mode, split, decision.reason)

        log = self.logger.bind(receipt_id=context.receipt_id)
        claim = await self.store.claim(candidate)

        if not claim.acquired:
            if claim.record.review_undelivered:
                return await self._redeliver_review(claim.record)
            log.info(
                "Returning existing distribution",
                status=claim.record.status.value,
                terminal=claim.record.is_terminal
            )
            return claim.record

        record = claim.record
        try:
            if not claim.created:
                if record.context != context:
                    log.warning("Receipt resubmitted with different details, keeping stored record")
                log.info(
                    "Resuming distribution",
                    attempt=record.attempt,
                    unresolved_legs=[leg.value for leg in record.unresolved_legs]
                )
            else:
                log.info(
                    "Distribution routed",
                    mode=record.mode.value,
                    reason=record.reason,
                    recipient_amount=str(split.recipient_amount),
                    fund_amount=str(split.fund_amount)
                )

            return await self._settle(record)
        finally:
            await self.store.release(context.receipt_id)

    def _build_record(self, context, mode, split, reason) -> DistributionRecord:
        record = DistributionRecord(
            receipt_id=context.receipt_id,
            mode=mode,
            split=split,
            context=context,
            fund_address=self.fund_address,
            reason=reason,
        )

        if mode == DistributionMode.PENDING:
            return replace(
                record,
                recipient_outcome=TransferOutcome.skipped(
                    TransferLeg.RECIPIENT,
                    tx_hash=pending_placeholder(TransferLeg.RECIPIENT, context.receipt_id),
                    error_detail="pending approval"
                ),
                fund_outcome=TransferOutcome.skipped(
                    TransferLeg.FUND,
                    tx_hash=pending_placeholder(TransferLeg.FUND, context.receipt_id),
                    error_detail="pending approval"
                ),
            )

        if mode == DistributionMode.MANUAL_REVIEW:
            return replace(
                record,
                recipient_outcome=TransferOutcome.skipped(TransferLeg.RECIPIENT, error_detail="manual review"),
                fund_outcome=TransferOutcome.skipped(TransferLeg.FUND, error_detail="manual review"),
            )

        return record

    async def _settle(self, record: DistributionRecord) -> DistributionRecord:
        if record.mode == DistributionMode.MANUAL_REVIEW:
            record = await self._emit_review(record)
        elif record.mode == DistributionMode.IMMEDIATE:
            record = await self._run_legs(record)

        await self.store.save(record)
        self.logger.info(
            "Distribution recorded",
            receipt_id=record.receipt_id,
            mode=record.mode.value,
            status=record.status.value,
            attempt=record.attempt
        )
        return record

    async def _emit_review(self, record: DistributionRecord) -> DistributionRecord:
        ticket = ReviewTicket.from_record(record)
        try:
            await self.review_sink.emit(ticket)
        except ReviewSinkError as e:
            self.logger.error(
                "Manual review ticket not delivered",
                receipt_id=record.receipt_id,
                error=e.message
            )
            return replace(record, review_emitted=False, updated_at=utcnow())

        return replace(record, review_emitted=True, updated_at=utcnow())

    async def _redeliver_review(self, record: DistributionRecord) -> DistributionRecord:
        claim = await self.store.claim(record, allow_terminal=True)
        if not claim.acquired:
            return claim.record

        try:
            current = claim.record
            if not current.review_undelivered:
                return current

            self.logger.info("Re-sending manual review ticket", receipt_id=current.receipt_id)
            current = await self._emit_review(current)
            await self.store.save(current)
            return current
        finally:
            await self.store.release(record.receipt_id)

    async def resend_review(self, receipt_id: str) -> DistributionRecord:
        """
        Deliver the review ticket of a manual-review record whose first
        delivery failed.

        Raises:
            DistributionNotFoundError: No record for the receipt
            InvalidTransitionError: Record has no undelivered ticket
        """
        record = await self.get_record(receipt_id)
        if not record.review_undelivered:
            raise InvalidTransitionError(
                "Distribution has no undelivered review ticket",
                {"receipt_id": receipt_id, "status": record.status.value}
            )
        return await self._redeliver_review(record)

    async def _run_legs(self, record: DistributionRecord) -> DistributionRecord:
        """
        Execute unresolved legs strictly in order, persisting after each one.

        A timed-out leg that has a transaction id is only re-polled.
        """
        for leg in record.unresolved_legs:
            previous = record.outcome_for(leg)
            amount = record.split.amount_for(leg)

            if previous is not None and previous.status == TransferStatus.TIMED_OUT and previous.tx_hash:
                outcome = await self.executor.reconcile_leg(previous)
            elif amount == 0:
                outcome = TransferOutcome.skipped(leg, error_detail="zero amount after split")
            else:
                outcome = await self.executor.execute_leg(leg, record.address_for(leg), amount)

            self.logger.info(
                "Transfer leg resolved",
                receipt_id=record.receipt_id,
                leg=leg.value,
                status=outcome.status.value,
                tx_hash=outcome.tx_hash
            )
            record = record.with_outcome(leg, outcome)
            await self.store.save(record)

        alert = record.integrity_alert()
        if alert is not None:
            self.logger.error("Partial distribution integrity alert", **alert)
        return record

    async def review(
        self,
        receipt_id: str,
        decision: ReviewDecision,
        reviewer: Optional[str] = None
    ) -> DistributionRecord:
        """
        Apply a reviewer override to a pending or manual-review distribution.

        Approval starts a new immediate attempt; rejection closes the record
        without transfers.

        Raises:
            DistributionNotFoundError: No record for the receipt
            InvalidTransitionError: Record is not awaiting review or is busy
        """
        decision = ReviewDecision(decision)
        existing = await self.store.get(receipt_id)
        if existing is None:
            raise DistributionNotFoundError(receipt_id)
        self._check_reviewable(existing)

        claim = await self.store.claim(existing, allow_terminal=True)
        if not claim.acquired:
            raise InvalidTransitionError(
                "Distribution is currently in flight",
                {"receipt_id": receipt_id}
            )

        try:
            current = claim.record
            self._check_reviewable(current)

            self.logger.info(
                "Reviewer decision",
                receipt_id=receipt_id,
                decision=decision.value,
                reviewer=reviewer,
                previous_mode=current.mode.value
            )

            if decision == ReviewDecision.REJECT:
                record = replace(
                    current,
                    review_decision=decision,
                    reviewed_by=reviewer,
                    reason="rejected by reviewer",
                    updated_at=utcnow(),
                )
                await self.store.save(record)
                return record

            record = replace(
                current,
                mode=DistributionMode.IMMEDIATE,
                recipient_outcome=None,
                fund_outcome=None,
                attempt=current.attempt + 1,
                review_decision=decision,
                reviewed_by=reviewer,
                reason="approved by reviewer",
                updated_at=utcnow(),
            )
            await self.store.save(record)
            return await self._settle(record)
        finally:
            await self.store.release(receipt_id)

    @staticmethod
    def _check_reviewable(record: DistributionRecord):
        if record.review_decision is not None:
            raise InvalidTransitionError(
                "Distribution has already been reviewed",
                {"receipt_id": record.receipt_id, "decision": record.review_decision.value}
            )
        if record.mode not in (DistributionMode.PENDING, DistributionMode.MANUAL_REVIEW):
            raise InvalidTransitionError(
                "Only pending or manual-review distributions can be reviewed",
                {"receipt_id": record.receipt_id, "mode": record.mode.value}
            )

    async def distribute_validated(
        self,
        user_id,
        receipt_id: str,
        recipient_address: str,
        validation_token: Optional[str] = None
    ) -> DistributionRecord:
        """
        Distribute using a cached validation result.

        Without a token the user's most recent validation is used.
        """
        if self.validation_cache is None:
            raise ConfigurationError("No validation cache configured")

        cached = self.validation_cache.resolve(user_id, validation_token)
        if not cached.is_acceptable:
            raise ValidationError(
                "Receipt did not pass validation",
                {"user_id": str(user_id), "reasons": list(cached.reasons)}
            )

        category = normalize_category(cached.category)
        if category == ReceiptCategory.UNKNOWN.value:
            category = categorize_store(cached.store_name).value

        return await self.distribute(ReceiptContext(
            receipt_id=receipt_id,
            recipient_address=recipient_address,
            total_reward_amount=cached.reward_amount,
            confidence_score=cached.confidence_score,
            category=category,
            store_name=cached.store_name,
            user_id=str(user_id),
        ))

    async def get_record(self, receipt_id: str) -> DistributionRecord:
        """Stored record for a receipt."""
        record = await self.store.get(receipt_id)
        if record is None:
            raise DistributionNotFoundError(receipt_id)
        return record
