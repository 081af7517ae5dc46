"""
Test distribution record status derivation.
"""

from dataclasses import replace

import pytest

from recircle_rewards.models import (
    DistributionMode,
    DistributionRecord,
    DistributionStatus,
    LedgerReceipt,
    ReceiptContext,
    ReviewDecision,
    SplitResult,
    TransferLeg,
    TransferOutcome,
    TransferStatus,
)

from conftest import FUND, RECIPIENT


def record_with(recipient_status, fund_status) -> DistributionRecord:
    record = DistributionRecord(
        receipt_id="R1",
        mode=DistributionMode.IMMEDIATE,
        split=SplitResult(7, 3),
        context=ReceiptContext("R1", RECIPIENT, 10, 0.95),
        fund_address=FUND,
    )
    if recipient_status:
        record = record.with_outcome(
            TransferLeg.RECIPIENT,
            TransferOutcome(recipient_status, tx_hash="0x01", leg=TransferLeg.RECIPIENT),
        )
    if fund_status:
        record = record.with_outcome(
            TransferLeg.FUND,
            TransferOutcome(fund_status, tx_hash="0x02", leg=TransferLeg.FUND),
        )
    return record


C, R, T, S = (TransferStatus.CONFIRMED, TransferStatus.REVERTED,
              TransferStatus.TIMED_OUT, TransferStatus.SKIPPED)


@pytest.mark.parametrize("recipient,fund,status,terminal", [
    (None, None, DistributionStatus.IN_FLIGHT, False),
    (C, None, DistributionStatus.IN_FLIGHT, False),
    (C, C, DistributionStatus.CONFIRMED, True),
    (S, C, DistributionStatus.CONFIRMED, True),
    (C, R, DistributionStatus.PARTIAL, True),
    (T, C, DistributionStatus.PARTIAL, False),
    (R, R, DistributionStatus.REVERTED, True),
    (R, T, DistributionStatus.TIMED_OUT, False),
    (T, T, DistributionStatus.TIMED_OUT, False),
])
def test_status_and_terminality(recipient, fund, status, terminal):
    record = record_with(recipient, fund)

    assert record.status == status
    assert record.is_terminal is terminal
    assert (record.integrity_alert() is not None) == (status == DistributionStatus.PARTIAL)


def test_unresolved_legs_keep_execution_order():
    record = record_with(T, None)

    assert record.unresolved_legs == [TransferLeg.RECIPIENT, TransferLeg.FUND]


def test_review_undelivered_only_for_failed_manual_review_tickets():
    manual = replace(record_with(None, None), mode=DistributionMode.MANUAL_REVIEW)

    assert replace(manual, review_emitted=False).review_undelivered
    assert not replace(manual, review_emitted=True).review_undelivered
    assert not manual.review_undelivered
    assert not replace(manual, review_emitted=False, review_decision=ReviewDecision.REJECT).review_undelivered
    assert not replace(manual, mode=DistributionMode.PENDING, review_emitted=False).review_undelivered


def test_ledger_receipt_from_thor():
    receipt = LedgerReceipt.from_thor("0xabc", {
        "reverted": True,
        "gasUsed": 21000,
        "paid": "0x10",
        "meta": {"blockNumber": 9, "blockID": "0x09", "txID": "0xabc"},
    })

    assert receipt.reverted is True
    assert receipt.block_number == 9
    assert receipt.paid == 16


if __name__ == "__main__":
    pytest.main([__file__])
