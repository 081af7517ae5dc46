"""
Builds the engine's collaborators from Settings.

Configuration is read here once and passed into constructors; nothing below
this layer looks at the environment.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from recircle_rewards.cache.cache_keys import CacheKeyBuilder
from recircle_rewards.cache.distribution_store import (
    DistributionStore,
    MemoryDistributionStore,
    RedisDistributionStore,
)
from recircle_rewards.cache.redis_client import RedisClient
from recircle_rewards.cache.validation_cache import ValidationCache
from recircle_rewards.core.config import Settings, get_settings
from recircle_rewards.services.confidence_router import RoutingPolicy
from recircle_rewards.services.distribution_service import DistributionService
from recircle_rewards.services.receipt_categories import normalize_category
from recircle_rewards.services.review_sink import LoggingReviewSink, ReviewSink, WebhookReviewSink
from recircle_rewards.services.signer import ThorTransactionSigner
from recircle_rewards.services.split_calculator import SplitRatio
from recircle_rewards.services.thor_client import ThorLedgerClient
from recircle_rewards.services.transfer_executor import TransferExecutor


logger = structlog.get_logger(__name__)


def build_routing_policy(settings: Settings) -> RoutingPolicy:
    return RoutingPolicy(
        high_threshold=settings.high_confidence_threshold,
        medium_threshold=settings.medium_confidence_threshold,
        fraud_flagged_categories=frozenset(
            normalize_category(category) for category in settings.fraud_flagged_categories
        ),
        category_thresholds={
            normalize_category(category): tuple(pair)
            for category, pair in settings.category_thresholds.items()
        },
    )


def build_split_ratio(settings: Settings) -> SplitRatio:
    return SplitRatio(settings.split_recipient_numerator, settings.split_denominator)


def build_signer(settings: Settings) -> Optional[ThorTransactionSigner]:
    """Distributor signer, or None when no key is configured (read-only mode)."""
    if settings.distributor_private_key is None:
        logger.warning("No distributor key configured, transfers will fail to submit")
        return None

    return ThorTransactionSigner(
        settings.distributor_private_key.get_secret_value(),
        chain_tag=settings.chain_tag,
        gas=settings.tx_gas,
        expiration=settings.tx_expiration,
        gas_price_coef=settings.tx_gas_price_coef,
    )


def build_ledger_client(settings: Settings, with_signer: bool = True) -> ThorLedgerClient:
    return ThorLedgerClient(
        endpoints=settings.resolved_thor_endpoints,
        token_address=settings.b3tr_contract_address,
        signer=build_signer(settings) if with_signer else None,
        probe_timeout=settings.probe_timeout_seconds,
        request_timeout=settings.request_timeout_seconds,
        poll_interval_ms=settings.poll_interval_ms,
        max_poll_attempts=settings.max_poll_attempts,
    )


async def build_store(settings: Settings) -> DistributionStore:
    if settings.store_backend == "redis":
        redis_client = RedisClient(settings.redis_url)
        await redis_client.connect()
        return RedisDistributionStore(
            redis_client,
            keys=CacheKeyBuilder(settings.redis_prefix, settings.environment),
            lease_ttl_seconds=settings.lease_ttl_seconds,
            record_ttl_seconds=settings.record_ttl_seconds,
        )

    if settings.is_production:
        logger.warning("Using in-memory distribution store in production")
    return MemoryDistributionStore()


def build_review_sink(settings: Settings) -> ReviewSink:
    if settings.manual_review_webhook_url:
        return WebhookReviewSink(
            settings.manual_review_webhook_url,
            timeout_seconds=settings.review_webhook_timeout_seconds,
        )
    return LoggingReviewSink()


def build_validation_cache(settings: Settings) -> ValidationCache:
    return ValidationCache(
        ttl_seconds=settings.validation_cache_ttl_seconds,
        recent_window_seconds=settings.validation_recent_window_seconds,
        check_period_seconds=settings.validation_cache_check_period_seconds,
    )


@asynccontextmanager
async def create_distribution_service(
    settings: Optional[Settings] = None,
    validation_cache: Optional[ValidationCache] = None
) -> AsyncIterator[DistributionService]:
    """
    Assemble a DistributionService and close its resources on exit.

    Usage:
        async with create_distribution_service(settings) as service:
            record = await service.distribute(context)
    """
    settings = settings or get_settings()

    ledger = build_ledger_client(settings)
    store = await build_store(settings)
    review_sink = build_review_sink(settings)

    service = DistributionService(
        store=store,
        executor=TransferExecutor(
            ledger,
            poll_interval_ms=settings.poll_interval_ms,
            max_poll_attempts=settings.max_poll_attempts,
        ),
        fund_address=settings.app_fund_address,
        review_sink=review_sink,
        policy=build_routing_policy(settings),
        split_ratio=build_split_ratio(settings),
        validation_cache=validation_cache or build_validation_cache(settings),
    )

    logger.info(
        "Distribution service ready",
        network=settings.vechain_network,
        endpoints=settings.resolved_thor_endpoints,
        store_backend=settings.store_backend,
        review_sink=type(review_sink).__name__
    )

    try:
        yield service
    finally:
        await review_sink.close()
        await store.close()
        await ledger.close()
