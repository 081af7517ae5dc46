"""
Shared fixtures: a scripted in-memory ledger and a wired DistributionService.
"""

import asyncio
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

import pytest

from recircle_rewards.cache.distribution_store import MemoryDistributionStore
from recircle_rewards.core.exceptions import ReceiptTimeoutError, SubmissionError
from recircle_rewards.models import LedgerReceipt, ReceiptContext
from recircle_rewards.services.distribution_service import DistributionService
from recircle_rewards.services.ledger_client import LedgerClient
from recircle_rewards.services.review_sink import QueueReviewSink
from recircle_rewards.services.transfer_executor import TransferExecutor


RECIPIENT = "0x" + "a" * 40
FUND = "0x" + "f" * 40

CONFIRM = "confirm"
REVERT = "revert"
TIMEOUT_ONCE = "timeout_once"
NEVER = "never"
REJECT = "reject"


class FakeLedger(LedgerClient):
    """
    Ledger double scripted per destination address.

    Each submission to an address consumes the next queued behaviour for it
    (``confirm`` when the queue is empty).
    """

    def __init__(self, submit_delay: float = 0.0):
        self.submit_delay = submit_delay
        self.behaviours: Dict[str, Deque[str]] = defaultdict(deque)
        self.submissions: List[dict] = []
        self.wait_calls: List[str] = []
        self.pending_timeouts: Dict[str, int] = {}
        self.tx_behaviour: Dict[str, str] = {}
        self.balances: Dict[str, int] = {}

    def script(self, address: str, *behaviours: str):
        self.behaviours[address.lower()].extend(behaviours)

    @property
    def submit_calls(self) -> int:
        return len(self.submissions)

    @property
    def call_count(self) -> int:
        return len(self.submissions) + len(self.wait_calls)

    def submissions_to(self, address: str) -> List[dict]:
        return [s for s in self.submissions if s["to"] == address.lower()]

    async def submit_transfer(self, to: str, amount: int) -> str:
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)

        queue = self.behaviours[to.lower()]
        behaviour = queue.popleft() if queue else CONFIRM
        if behaviour == REJECT:
            raise SubmissionError("node rejected transfer", {"to": to})

        tx_id = "0x" + format(len(self.submissions) + 1, "064x")
        self.submissions.append({"to": to.lower(), "amount": amount, "tx_id": tx_id})
        self.tx_behaviour[tx_id] = behaviour
        if behaviour == TIMEOUT_ONCE:
            self.pending_timeouts[tx_id] = 1
        return tx_id

    async def wait_for_receipt(
        self,
        tx_id: str,
        poll_interval_ms: Optional[int] = None,
        max_attempts: Optional[int] = None
    ) -> LedgerReceipt:
        self.wait_calls.append(tx_id)
        behaviour = self.tx_behaviour[tx_id]

        if behaviour == NEVER:
            raise ReceiptTimeoutError(tx_id, max_attempts or 30)
        if self.pending_timeouts.get(tx_id):
            self.pending_timeouts[tx_id] -= 1
            raise ReceiptTimeoutError(tx_id, max_attempts or 30)

        return LedgerReceipt(
            tx_id=tx_id,
            reverted=behaviour == REVERT,
            block_number=1000 + len(self.wait_calls),
        )

    async def get_receipt(self, tx_id: str) -> Optional[LedgerReceipt]:
        return None

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)


def make_context(
    receipt_id: str = "R1",
    total: int = 10,
    confidence: float = 0.95,
    category: str = "ride_share",
    recipient: str = RECIPIENT
) -> ReceiptContext:
    return ReceiptContext(
        receipt_id=receipt_id,
        recipient_address=recipient,
        total_reward_amount=total,
        confidence_score=confidence,
        category=category,
    )


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def store():
    return MemoryDistributionStore()


@pytest.fixture
def review_sink():
    return QueueReviewSink()


@pytest.fixture
def service(ledger, store, review_sink):
    return DistributionService(
        store=store,
        executor=TransferExecutor(ledger, poll_interval_ms=1, max_poll_attempts=3),
        fund_address=FUND,
        review_sink=review_sink,
    )
