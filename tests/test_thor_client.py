"""
Test the Thor ledger client against an in-process fake Thor node.
"""

import asyncio
import hashlib
import time

import pytest
from aiohttp import test_utils, web

from recircle_rewards.core.exceptions import (
    LedgerUnavailableError,
    ReceiptTimeoutError,
    SubmissionError,
)
from recircle_rewards.services.erc20 import encode_balance_of
from recircle_rewards.services.signer import ThorTransactionSigner
from recircle_rewards.services.thor_client import ThorLedgerClient


PRIVATE_KEY = "7582be841ca040aa940fff6c05773129e135623e41acce3e0b8ba520dc1ae26a"
TOKEN = "0x" + "b3" * 20
RECIPIENT = "0x" + "a" * 40
DEAD_ENDPOINT = "http://127.0.0.1:1"


class FakeThorNode:
    """Minimal Thor REST node: best block, tx pool, receipts and contract calls."""

    def __init__(self):
        self.receipt_mode = "confirm"
        self.reject_transactions = 0
        self.posted = []
        self.calls = []
        self.receipt_polls = 0
        self.token_balance = 0

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/blocks/best", self.best_block)
        app.router.add_post("/transactions", self.post_transaction)
        app.router.add_get("/transactions/{tx_id}/receipt", self.receipt)
        app.router.add_post("/accounts/*", self.call_contract)
        app.router.add_get("/accounts/{address}", self.account)
        return app

    async def best_block(self, request):
        return web.json_response({"number": 123, "id": "0x0000007b" + "ab" * 28, "timestamp": 1700000000})

    async def post_transaction(self, request):
        body = await request.json()
        if self.reject_transactions:
            self.reject_transactions -= 1
            return web.Response(status=400, text="bad tx: insufficient energy")

        self.posted.append(body["raw"])
        return web.json_response({"id": "0x" + hashlib.sha256(body["raw"].encode()).hexdigest()})

    async def receipt(self, request):
        self.receipt_polls += 1
        tx_id = request.match_info["tx_id"]
        if self.receipt_mode == "never":
            return web.json_response(None)
        if self.receipt_mode == "late" and self.receipt_polls < 3:
            return web.json_response(None)

        return web.json_response({
            "gasUsed": 36518,
            "gasPayer": "0x" + "c" * 40,
            "paid": "0x1fbad5f2e25570000",
            "reward": "0x984d9c8dd8008000",
            "reverted": self.receipt_mode == "revert",
            "meta": {"blockID": "0x0000007c" + "cd" * 28, "blockNumber": 124, "txID": tx_id},
            "outputs": [],
        })

    async def call_contract(self, request):
        body = await request.json()
        self.calls.append(body)
        return web.json_response([{
            "data": "0x" + format(self.token_balance, "064x"),
            "events": [],
            "transfers": [],
            "gasUsed": 591,
            "reverted": False,
            "vmError": "",
        }])

    async def account(self, request):
        return web.json_response({
            "balance": hex(5 * 10 ** 18),
            "energy": hex(2 * 10 ** 18),
            "hasCode": False,
        })


@pytest.fixture
def node():
    return FakeThorNode()


@pytest.fixture
async def node_url(node):
    server = test_utils.TestServer(node.build_app())
    await server.start_server()
    yield str(server.make_url("")).rstrip("/")
    await server.close()


@pytest.fixture
def signer():
    return ThorTransactionSigner(PRIVATE_KEY, chain_tag=0x27)


@pytest.fixture
async def make_client(signer):
    clients = []

    def _make(endpoints, **kwargs):
        kwargs.setdefault("signer", signer)
        client = ThorLedgerClient(
            endpoints,
            TOKEN,
            probe_timeout=1.0,
            request_timeout=2.0,
            poll_interval_ms=10,
            max_poll_attempts=5,
            **kwargs
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.close()


@pytest.mark.asyncio
async def test_probe_skips_dead_endpoint(make_client, node_url):
    client = make_client([DEAD_ENDPOINT, node_url])

    assert await client.get_active_endpoint() == node_url
    assert client.stats_by_endpoint[DEAD_ENDPOINT].failed_requests == 1


@pytest.mark.asyncio
async def test_no_reachable_endpoint(make_client):
    client = make_client([DEAD_ENDPOINT])

    with pytest.raises(LedgerUnavailableError) as exc_info:
        await client.get_active_endpoint()
    assert isinstance(exc_info.value, SubmissionError)


@pytest.mark.asyncio
async def test_concurrent_first_use_probes_once(make_client, node_url, node):
    client = make_client([node_url])

    endpoints = await asyncio.gather(*(client.get_active_endpoint() for _ in range(5)))

    assert set(endpoints) == {node_url}
    assert client.stats_by_endpoint[node_url].total_requests == 1


@pytest.mark.asyncio
async def test_stale_failure_does_not_reprobe(make_client, node_url):
    """A failure reported for an endpoint that is no longer active keeps the current one."""
    client = make_client([node_url])
    active = await client.get_active_endpoint()
    requests_before = client.stats_by_endpoint[node_url].total_requests

    assert await client._select_endpoint(DEAD_ENDPOINT) == active
    assert client.stats_by_endpoint[node_url].total_requests == requests_before


@pytest.mark.asyncio
async def test_submit_and_confirm(make_client, node_url, node):
    client = make_client([node_url])

    tx_id = await client.submit_transfer(RECIPIENT, 7 * 10 ** 18)
    receipt = await client.wait_for_receipt(tx_id)

    assert len(node.posted) == 1
    assert node.posted[0].startswith("0x")
    assert receipt.reverted is False
    assert receipt.block_number == 124
    assert receipt.tx_id == tx_id
    assert receipt.paid == int("1fbad5f2e25570000", 16)


@pytest.mark.asyncio
async def test_receipt_polled_until_mined(make_client, node_url, node):
    node.receipt_mode = "late"
    client = make_client([node_url])

    receipt = await client.wait_for_receipt("0x" + "1" * 64)

    assert receipt.reverted is False
    assert node.receipt_polls == 3


@pytest.mark.asyncio
async def test_reverted_receipt(make_client, node_url, node):
    node.receipt_mode = "revert"
    client = make_client([node_url])

    receipt = await client.wait_for_receipt("0x" + "1" * 64)

    assert receipt.reverted is True


@pytest.mark.asyncio
async def test_missing_receipt_times_out_within_budget(make_client, node_url, node):
    """Polling stops after max_attempts; elapsed time is bounded by interval * attempts."""
    node.receipt_mode = "never"
    client = make_client([node_url])

    started = time.monotonic()
    with pytest.raises(ReceiptTimeoutError) as exc_info:
        await client.wait_for_receipt("0x" + "1" * 64, poll_interval_ms=20, max_attempts=4)
    elapsed = time.monotonic() - started

    assert exc_info.value.attempts == 4
    assert node.receipt_polls == 4
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_rejected_submission_resubmits_once(make_client, node_url, node):
    node.reject_transactions = 1
    client = make_client([node_url])

    tx_id = await client.submit_transfer(RECIPIENT, 1)

    assert tx_id
    assert len(node.posted) == 1


@pytest.mark.asyncio
async def test_repeated_rejection_raises_submission_error(make_client, node_url, node):
    node.reject_transactions = 2
    client = make_client([node_url])

    with pytest.raises(SubmissionError) as exc_info:
        await client.submit_transfer(RECIPIENT, 1)

    assert exc_info.value.details["retry_error"] == "Thor node returned HTTP 400"
    assert node.posted == []


@pytest.mark.asyncio
async def test_submit_without_signer_fails(make_client, node_url):
    client = make_client([node_url], signer=None)

    with pytest.raises(SubmissionError):
        await client.submit_transfer(RECIPIENT, 1)


@pytest.mark.asyncio
async def test_token_balance_via_contract_call(make_client, node_url, node):
    node.token_balance = 42 * 10 ** 18
    client = make_client([node_url], signer=None)

    balance = await client.get_balance(RECIPIENT)

    assert balance == 42 * 10 ** 18
    clause = node.calls[0]["clauses"][0]
    assert clause["to"] == TOKEN
    assert clause["data"] == encode_balance_of(RECIPIENT)


@pytest.mark.asyncio
async def test_account_and_health(make_client, node_url):
    client = make_client([DEAD_ENDPOINT, node_url], signer=None)

    account = await client.get_account(RECIPIENT)
    health = await client.health_check()

    assert account["balance"] == 5 * 10 ** 18
    assert account["energy"] == 2 * 10 ** 18
    assert health["endpoints"][node_url]["healthy"] is True
    assert health["endpoints"][node_url]["best_block"] == 123
    assert health["endpoints"][DEAD_ENDPOINT]["healthy"] is False
    assert health["stats"]["active_endpoint"] == node_url


if __name__ == "__main__":
    pytest.main([__file__])
