"""
Durable map from receipt id to distribution record.

The store is the idempotency authority: ``claim`` atomically inserts a record
when absent and hands out an in-flight lease, so two concurrent callers for the
same receipt never both execute transfers.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Set

import structlog

from recircle_rewards.cache.cache_keys import CacheKeyBuilder
from recircle_rewards.cache.redis_client import RedisClient
from recircle_rewards.models import DistributionRecord


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Claim:
    """Result of a claim: the stored record and whether the caller holds the lease."""
    record: DistributionRecord
    acquired: bool
    created: bool = False


class DistributionStore(ABC):
    """Storage interface for distribution records."""

    @abstractmethod
    async def get(self, receipt_id: str) -> Optional[DistributionRecord]:
        """Stored record, or None."""

    @abstractmethod
    async def save(self, record: DistributionRecord, release: bool = False) -> None:
        """Persist ``record``, optionally dropping the caller's lease."""

    @abstractmethod
    async def claim(self, record: DistributionRecord, allow_terminal: bool = False) -> Claim:
        """
        Check-and-insert plus lease acquisition in one atomic step.

        - absent: ``record`` is stored and the lease acquired
        - terminal (and not ``allow_terminal``) or leased: stored record, not acquired
        - otherwise: stored record with the lease acquired
        """

    @abstractmethod
    async def release(self, receipt_id: str) -> None:
        """Drop the in-flight lease."""

    async def close(self) -> None:
        """Release backend resources."""


class MemoryDistributionStore(DistributionStore):
    """Process-local store for single-instance deployments and tests."""

    def __init__(self):
        self._records: Dict[str, DistributionRecord] = {}
        self._leases: Set[str] = set()
        self._lock = asyncio.Lock()

    async def get(self, receipt_id: str) -> Optional[DistributionRecord]:
        return self._records.get(receipt_id)

    async def save(self, record: DistributionRecord, release: bool = False) -> None:
        async with self._lock:
            self._records[record.receipt_id] = record
            if release:
                self._leases.discard(record.receipt_id)

    async def claim(self, record: DistributionRecord, allow_terminal: bool = False) -> Claim:
        async with self._lock:
            existing = self._records.get(record.receipt_id)
            if existing is None:
                self._records[record.receipt_id] = record
                self._leases.add(record.receipt_id)
                return Claim(record, True, created=True)

            if (existing.is_terminal and not allow_terminal) or record.receipt_id in self._leases:
                return Claim(existing, False)

            self._leases.add(record.receipt_id)
            return Claim(existing, True)

    async def release(self, receipt_id: str) -> None:
        async with self._lock:
            self._leases.discard(receipt_id)

    def __len__(self) -> int:
        return len(self._records)


# KEYS[1] record key, KEYS[2] lease key
# ARGV[1] record JSON, ARGV[2] lease TTL, ARGV[3] allow terminal flag, ARGV[4] record TTL
CLAIM_SCRIPT = """
local existing = redis.call('GET', KEYS[1])
if not existing then
    if tonumber(ARGV[4]) > 0 then
        redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[4])
    else
        redis.call('SET', KEYS[1], ARGV[1])
    end
    redis.call('SET', KEYS[2], '1', 'EX', ARGV[2])
    return {1, ARGV[1], 1}
end
local decoded = cjson.decode(existing)
if decoded['terminal'] and ARGV[3] ~= '1' then
    return {0, existing, 0}
end
if redis.call('SET', KEYS[2], '1', 'NX', 'EX', ARGV[2]) then
    return {1, existing, 0}
end
return {0, existing, 0}
"""


class RedisDistributionStore(DistributionStore):
    """Redis-backed store shared by every engine instance."""

    def __init__(
        self,
        redis_client: RedisClient,
        keys: Optional[CacheKeyBuilder] = None,
        lease_ttl_seconds: int = 300,
        record_ttl_seconds: Optional[int] = None
    ):
        self.logger = logger.bind(service="redis_distribution_store")
        self.redis = redis_client
        self.keys = keys or CacheKeyBuilder()
        self.lease_ttl_seconds = lease_ttl_seconds
        self.record_ttl_seconds = record_ttl_seconds

    @staticmethod
    def _dumps(record: DistributionRecord) -> str:
        return json.dumps(record.to_dict(), sort_keys=True)

    @staticmethod
    def _loads(payload: str) -> DistributionRecord:
        return DistributionRecord.from_dict(json.loads(payload))

    async def get(self, receipt_id: str) -> Optional[DistributionRecord]:
        payload = await self.redis.get(self.keys.distribution_key(receipt_id))
        return self._loads(payload) if payload else None

    async def save(self, record: DistributionRecord, release: bool = False) -> None:
        await self.redis.set(
            self.keys.distribution_key(record.receipt_id),
            self._dumps(record),
            ex=self.record_ttl_seconds
        )
        if release:
            await self.release(record.receipt_id)

    async def claim(self, record: DistributionRecord, allow_terminal: bool = False) -> Claim:
        acquired, payload, created = await self.redis.eval(
            CLAIM_SCRIPT,
            [self.keys.distribution_key(record.receipt_id), self.keys.lease_key(record.receipt_id)],
            [
                self._dumps(record),
                self.lease_ttl_seconds,
                "1" if allow_terminal else "0",
                self.record_ttl_seconds or 0,
            ]
        )
        claim = Claim(self._loads(payload), bool(int(acquired)), created=bool(int(created)))
        self.logger.debug(
            "Distribution claim",
            receipt_id=record.receipt_id,
            acquired=claim.acquired,
            created=claim.created
        )
        return claim

    async def release(self, receipt_id: str) -> None:
        await self.redis.delete(self.keys.lease_key(receipt_id))

    async def close(self) -> None:
        await self.redis.disconnect()
