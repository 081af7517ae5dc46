"""
VeChain Thor REST client with endpoint failover.

This service provides:
- Ordered endpoint probing with a single shared active endpoint
- Signed token transfer submission with one failover resubmission
- Bounded receipt polling
- Token and account balance reads
- Per-endpoint statistics and health checks
"""

import asyncio
import json
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from recircle_rewards.core.exceptions import (
    ConfigurationError,
    LedgerError,
    LedgerUnavailableError,
    ReceiptTimeoutError,
    SubmissionError,
)
from recircle_rewards.models import LedgerReceipt
from recircle_rewards.services.erc20 import decode_uint256, encode_balance_of, transfer_clause
from recircle_rewards.services.ledger_client import LedgerClient
from recircle_rewards.services.signer import SignedTransaction, ThorTransactionSigner
from recircle_rewards.utils.validation import VeChainValidator


logger = structlog.get_logger(__name__)


@dataclass
class EndpointStats:
    """Statistics for a single Thor endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_response_time: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[str] = None

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def average_response_time(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time / self.successful_requests


class ThorLedgerClient(LedgerClient):
    """
    Ledger client for the VeChain Thor REST API.

    The active endpoint is shared by every caller of this instance and only
    changes under ``_probe_lock``. A failure reported against an endpoint that is
    no longer active does not trigger another probe.
    """

    def __init__(
        self,
        endpoints: List[str],
        token_address: str,
        signer: Optional[ThorTransactionSigner] = None,
        session: Optional[aiohttp.ClientSession] = None,
        probe_timeout: float = 3.0,
        request_timeout: float = 10.0,
        poll_interval_ms: int = 2000,
        max_poll_attempts: int = 30
    ):
        if not endpoints:
            raise ConfigurationError("At least one Thor endpoint is required")

        self.logger = logger.bind(service="thor_client")

        self.endpoints = [endpoint.rstrip("/") for endpoint in endpoints]
        self.token_address = VeChainValidator.require_address(token_address)
        self.signer = signer
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout
        self.poll_interval_ms = poll_interval_ms
        self.max_poll_attempts = max_poll_attempts

        self._session = session
        self._owns_session = session is None
        self._active_endpoint: Optional[str] = None
        self._probe_lock = asyncio.Lock()

        self.stats_by_endpoint: Dict[str, EndpointStats] = {
            endpoint: EndpointStats(url=endpoint) for endpoint in self.endpoints
        }

    @property
    def active_endpoint(self) -> Optional[str]:
        return self._active_endpoint

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _update_endpoint_stats(
        self,
        endpoint: str,
        success: bool,
        response_time: float,
        error: Optional[str] = None
    ):
        stats = self.stats_by_endpoint.setdefault(endpoint, EndpointStats(url=endpoint))
        stats.total_requests += 1

        if success:
            stats.successful_requests += 1
            stats.total_response_time += response_time
        else:
            stats.failed_requests += 1
            stats.last_error = error
            stats.last_error_time = datetime.now(timezone.utc).isoformat()

    async def _request_endpoint(
        self,
        endpoint: str,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """Make a single request to a specific endpoint."""
        session = await self._get_session()
        kwargs: Dict[str, Any] = {}
        if payload is not None:
            kwargs["json"] = payload
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)

        start_time = time.monotonic()
        try:
            async with session.request(method, endpoint + path, **kwargs) as response:
                body = await response.text()
                if response.status >= 400:
                    raise LedgerError(
                        f"Thor node returned HTTP {response.status}",
                        {
                            "endpoint": endpoint,
                            "path": path,
                            "status": response.status,
                            "body": body.strip()[:500],
                        }
                    )
                data = json.loads(body) if body.strip() else None

        except LedgerError as e:
            self._update_endpoint_stats(endpoint, False, time.monotonic() - start_time, e.message)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            error = str(e) or type(e).__name__
            self._update_endpoint_stats(endpoint, False, time.monotonic() - start_time, error)
            raise LedgerError(
                f"Thor request failed: {error}",
                {"endpoint": endpoint, "path": path, "error_type": type(e).__name__}
            ) from e

        self._update_endpoint_stats(endpoint, True, time.monotonic() - start_time)
        return data

    async def _select_endpoint(self, failed_endpoint: Optional[str] = None) -> str:
        """
        Return the active endpoint, probing in order when there is none or when
        the active one is the endpoint that just failed.
        """
        async with self._probe_lock:
            if self._active_endpoint is not None and self._active_endpoint != failed_endpoint:
                return self._active_endpoint

            for endpoint in self.endpoints:
                try:
                    await self._request_endpoint(
                        endpoint, "GET", "/blocks/best", timeout=self.probe_timeout
                    )
                except LedgerError as e:
                    self.logger.warning(
                        "Thor endpoint probe failed",
                        endpoint=endpoint,
                        error=e.message
                    )
                    continue

                if endpoint != self._active_endpoint:
                    self.logger.info(
                        "Active Thor endpoint selected",
                        endpoint=endpoint,
                        previous=self._active_endpoint
                    )
                self._active_endpoint = endpoint
                return endpoint

            self._active_endpoint = None
            self.logger.error("No Thor endpoint reachable", endpoints=self.endpoints)
            raise LedgerUnavailableError(self.endpoints)

    async def get_active_endpoint(self) -> str:
        """Active endpoint, probing on first use."""
        if self._active_endpoint is not None:
            return self._active_endpoint
        return await self._select_endpoint()

    async def probe(self) -> str:
        """Force a fresh probe of every endpoint in order."""
        return await self._select_endpoint(self._active_endpoint)

    async def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Request against the active endpoint, failing over once."""
        endpoint = await self.get_active_endpoint()
        try:
            return await self._request_endpoint(endpoint, method, path, payload)
        except LedgerError as e:
            self.logger.warning(
                "Thor request failed, re-probing",
                method=method,
                path=path,
                endpoint=endpoint,
                error=e.message
            )
            retry_endpoint = await self._select_endpoint(endpoint)
            return await self._request_endpoint(retry_endpoint, method, path, payload)

    async def best_block(self) -> Dict[str, Any]:
        """Latest block summary (number, id, timestamp)."""
        block = await self._call("GET", "/blocks/best")
        if not block or "id" not in block:
            raise LedgerError("Thor node returned no best block", {"response": block})
        return block

    async def _sign_transfer(self, endpoint: str, to: str, amount: int) -> SignedTransaction:
        block = await self._request_endpoint(endpoint, "GET", "/blocks/best")
        if not block or "id" not in block:
            raise LedgerError("Thor node returned no best block", {"endpoint": endpoint})

        # blockRef is the first 8 bytes of the block id
        block_ref = block["id"][:18]
        return self.signer.sign([transfer_clause(self.token_address, to, amount)], block_ref)

    async def _send_raw(self, endpoint: str, signed: SignedTransaction) -> str:
        result = await self._request_endpoint(
            endpoint, "POST", "/transactions", {"raw": signed.raw}
        )
        tx_id = (result or {}).get("id")
        if not tx_id:
            raise LedgerError(
                "Thor node accepted transaction without returning an id",
                {"endpoint": endpoint, "response": result}
            )
        return tx_id

    async def submit_transfer(self, to: str, amount: int) -> str:
        """
        Sign and submit a token transfer of ``amount`` minor units to ``to``.

        On rejection or a network failure the endpoints are re-probed once and
        the same signed payload is resubmitted once.

        Returns:
            Transaction id

        Raises:
            SubmissionError: If no signer is configured or both attempts fail
        """
        if self.signer is None:
            raise SubmissionError("No distributor key configured for submission")

        to = VeChainValidator.require_address(to)
        endpoint = await self.get_active_endpoint()
        signed: Optional[SignedTransaction] = None

        try:
            signed = await self._sign_transfer(endpoint, to, amount)
            tx_id = await self._send_raw(endpoint, signed)
            self.logger.info(
                "Transfer submitted",
                tx_id=tx_id,
                to=to,
                amount=str(amount),
                endpoint=endpoint
            )
            return tx_id
        except LedgerError as e:
            self.logger.warning(
                "Transfer submission failed, re-probing",
                to=to,
                endpoint=endpoint,
                error=e.message,
                details=e.details
            )
            first_error = e

        retry_endpoint = await self._select_endpoint(endpoint)
        try:
            if signed is None:
                signed = await self._sign_transfer(retry_endpoint, to, amount)
            tx_id = await self._send_raw(retry_endpoint, signed)
        except LedgerError as e:
            # The first POST may have reached the pool before the connection dropped
            if signed is not None and "known tx" in str(e.details.get("body", "")).lower():
                self.logger.info("Transaction already known to node", tx_id=signed.tx_id)
                return signed.tx_id

            self.logger.error(
                "Transfer submission failed after failover",
                to=to,
                endpoint=retry_endpoint,
                error=e.message
            )
            raise SubmissionError(
                f"Transfer submission failed: {e.message}",
                {
                    "to": to,
                    "amount": str(amount),
                    "first_error": first_error.message,
                    "retry_error": e.message,
                    "retry_endpoint": retry_endpoint,
                }
            ) from e

        self.logger.info(
            "Transfer submitted after failover",
            tx_id=tx_id,
            to=to,
            amount=str(amount),
            endpoint=retry_endpoint
        )
        return tx_id

    async def get_receipt(self, tx_id: str) -> Optional[LedgerReceipt]:
        data = await self._call("GET", f"/transactions/{tx_id}/receipt")
        if data is None:
            return None
        return LedgerReceipt.from_thor(tx_id, data)

    async def wait_for_receipt(
        self,
        tx_id: str,
        poll_interval_ms: Optional[int] = None,
        max_attempts: Optional[int] = None
    ) -> LedgerReceipt:
        """
        Poll for a transaction receipt.

        Args:
            tx_id: Transaction id returned by ``submit_transfer``
            poll_interval_ms: Delay between polls (client default if None)
            max_attempts: Maximum number of polls (client default if None)

        Returns:
            LedgerReceipt once the transaction is included in a block

        Raises:
            ReceiptTimeoutError: If every attempt finds no receipt or fails
        """
        interval = (poll_interval_ms if poll_interval_ms is not None else self.poll_interval_ms) / 1000
        attempts = max_attempts if max_attempts is not None else self.max_poll_attempts

        for attempt in range(1, attempts + 1):
            try:
                receipt = await self.get_receipt(tx_id)
            except LedgerError as e:
                # Transient poll failures consume an attempt
                self.logger.warning(
                    "Receipt poll failed",
                    tx_id=tx_id,
                    attempt=attempt,
                    error=e.message
                )
                receipt = None

            if receipt is not None:
                self.logger.info(
                    "Receipt observed",
                    tx_id=tx_id,
                    reverted=receipt.reverted,
                    block_number=receipt.block_number,
                    attempt=attempt
                )
                return receipt

            if attempt < attempts:
                await asyncio.sleep(interval)

        self.logger.warning("Receipt polling exhausted", tx_id=tx_id, attempts=attempts)
        raise ReceiptTimeoutError(tx_id, attempts)

    async def get_balance(self, address: str) -> int:
        """Token balance via a read-only ``balanceOf`` call."""
        address = VeChainValidator.require_address(address)
        results = await self._call("POST", "/accounts/*", {
            "clauses": [{
                "to": self.token_address,
                "value": "0x0",
                "data": encode_balance_of(address),
            }]
        })
        if not results:
            raise LedgerError("Empty balanceOf call result", {"address": address})

        result = results[0]
        if result.get("reverted"):
            raise LedgerError(
                "balanceOf call reverted",
                {"address": address, "vm_error": result.get("vmError")}
            )
        return decode_uint256(result.get("data") or "0x")

    async def get_account(self, address: str) -> Dict[str, Any]:
        """Native VET balance and VTHO energy of an account, in wei."""
        address = VeChainValidator.require_address(address)
        data = await self._call("GET", f"/accounts/{address}")
        return {
            "address": address,
            "balance": int(data.get("balance", "0x0"), 16),
            "energy": int(data.get("energy", "0x0"), 16),
            "has_code": bool(data.get("hasCode")),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Statistics for all endpoints."""
        return {
            "active_endpoint": self._active_endpoint,
            "endpoints": {
                url: {
                    **asdict(stats),
                    "success_rate": stats.success_rate,
                    "average_response_time": stats.average_response_time,
                }
                for url, stats in self.stats_by_endpoint.items()
            },
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform a health check on all endpoints."""
        health_results = {}

        for endpoint in self.endpoints:
            start_time = time.monotonic()
            try:
                block = await self._request_endpoint(
                    endpoint, "GET", "/blocks/best", timeout=self.probe_timeout
                )
                health_results[endpoint] = {
                    "healthy": True,
                    "response_time": time.monotonic() - start_time,
                    "best_block": (block or {}).get("number"),
                    "error": None,
                }
            except LedgerError as e:
                health_results[endpoint] = {
                    "healthy": False,
                    "response_time": None,
                    "best_block": None,
                    "error": e.message,
                }

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": health_results,
            "stats": self.get_stats(),
        }
