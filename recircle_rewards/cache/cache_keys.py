"""
Cache key building utilities.
"""

from typing import Any


class CacheKeyBuilder:
    """Utility for building consistent cache keys."""

    def __init__(self, prefix: str = "recircle_rewards", environment: str = "production"):
        self.prefix = prefix
        self.environment = environment
        self.separator = ":"

    def build(self, *parts: Any) -> str:
        """Build cache key from parts."""
        normalized_parts = []

        if self.prefix:
            normalized_parts.append(self.prefix)

        # Keep development data apart from production data on shared instances
        if self.environment != "production":
            normalized_parts.append(self.environment)

        for part in parts:
            if part is not None:
                normalized_parts.append(str(part))

        return self.separator.join(normalized_parts)

    def distribution_key(self, receipt_id: str) -> str:
        """Stored distribution record for a receipt."""
        return self.build("distribution", receipt_id)

    def lease_key(self, receipt_id: str) -> str:
        """In-flight lease held by the caller executing a distribution."""
        return self.build("distribution", receipt_id, "lease")
