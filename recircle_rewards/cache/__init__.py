"""
Storage layer: distribution records, validation results and the Redis wrapper.
"""

from .cache_keys import CacheKeyBuilder
from .distribution_store import (
    Claim,
    DistributionStore,
    MemoryDistributionStore,
    RedisDistributionStore,
)
from .redis_client import RedisClient
from .validation_cache import CachedValidation, ValidationCache

__all__ = [
    "CacheKeyBuilder",
    "CachedValidation",
    "Claim",
    "DistributionStore",
    "MemoryDistributionStore",
    "RedisClient",
    "RedisDistributionStore",
    "ValidationCache",
]
