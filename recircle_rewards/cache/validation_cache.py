"""
Short-lived cache of receipt validation results.

A validation result is stored under a random token when the receipt is
validated and consumed once when the reward is claimed.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from recircle_rewards.core.exceptions import ValidationTokenNotFoundError


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CachedValidation:
    """Validation result awaiting a reward claim. Reward amounts are minor units."""
    validation_token: str
    user_id: str
    reward_amount: int
    confidence_score: float
    category: str = "unknown"
    store_name: Optional[str] = None
    purchase_amount: Optional[str] = None
    purchase_date: Optional[str] = None
    is_acceptable: bool = True
    reasons: Tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)


class ValidationCache:
    """
    In-process TTL cache keyed by validation token.

    Expired entries are swept on access at most once per ``check_period_seconds``.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        recent_window_seconds: int = 300,
        check_period_seconds: int = 120,
        clock: Callable[[], float] = time.time
    ):
        self.logger = logger.bind(service="validation_cache")
        self.ttl_seconds = ttl_seconds
        self.recent_window_seconds = recent_window_seconds
        self.check_period_seconds = check_period_seconds
        self._clock = clock
        self._entries: Dict[str, CachedValidation] = {}
        self._stats = {"saved": 0, "hits": 0, "misses": 0, "expired": 0}
        self._last_sweep = clock()

    def _is_expired(self, entry: CachedValidation) -> bool:
        return self._clock() - entry.timestamp >= self.ttl_seconds

    def _sweep_if_due(self):
        if self._clock() - self._last_sweep >= self.check_period_seconds:
            removed = self.purge_expired()
            if removed:
                self.logger.debug("Expired validations evicted", count=removed)

    def save(
        self,
        user_id,
        reward_amount: int,
        confidence_score: float,
        category: str = "unknown",
        store_name: Optional[str] = None,
        purchase_amount: Optional[str] = None,
        purchase_date: Optional[str] = None,
        is_acceptable: bool = True,
        reasons: Optional[List[str]] = None
    ) -> str:
        """Store a validation result and return its one-time token."""
        self._sweep_if_due()
        token = str(uuid.uuid4())
        self._entries[token] = CachedValidation(
            validation_token=token,
            user_id=str(user_id),
            reward_amount=reward_amount,
            confidence_score=confidence_score,
            category=category,
            store_name=store_name,
            purchase_amount=purchase_amount,
            purchase_date=purchase_date,
            is_acceptable=is_acceptable,
            reasons=tuple(reasons or ()),
            timestamp=self._clock(),
        )
        self._stats["saved"] += 1
        self.logger.info(
            "Validation result cached",
            validation_token=token,
            user_id=str(user_id),
            reward_amount=str(reward_amount)
        )
        return token

    def pop(self, token: str, user_id) -> Optional[CachedValidation]:
        """
        Retrieve and delete a validation result.

        Returns None if the token is unknown, expired, or belongs to another
        user. A mismatched user leaves the entry in place.
        """
        self._sweep_if_due()
        entry = self._entries.get(token)
        if entry is None or self._is_expired(entry):
            if entry is not None:
                del self._entries[token]
                self._stats["expired"] += 1
            self._stats["misses"] += 1
            return None

        if entry.user_id != str(user_id):
            self.logger.warning(
                "Validation token user mismatch",
                validation_token=token,
                expected=entry.user_id,
                got=str(user_id)
            )
            self._stats["misses"] += 1
            return None

        del self._entries[token]
        self._stats["hits"] += 1
        return entry

    def recent_for_user(self, user_id, window_seconds: Optional[int] = None) -> Optional[CachedValidation]:
        """
        Most recent unexpired validation for a user within the window.

        The entry is not consumed; it expires with its TTL.
        """
        self._sweep_if_due()
        window = self.recent_window_seconds if window_seconds is None else window_seconds
        cutoff = self._clock() - window
        user_id = str(user_id)

        latest = None
        for entry in self._entries.values():
            if entry.user_id != user_id or self._is_expired(entry) or entry.timestamp <= cutoff:
                continue
            if latest is None or entry.timestamp > latest.timestamp:
                latest = entry

        if latest is None:
            self._stats["misses"] += 1
        else:
            self._stats["hits"] += 1
        return latest

    def resolve(self, user_id, token: Optional[str] = None) -> CachedValidation:
        """
        Resolve the validation backing a reward claim.

        Args:
            user_id: Claiming user
            token: One-time validation token; when omitted the user's most
                recent validation is used

        Raises:
            ValidationTokenNotFoundError: If nothing usable is cached
        """
        entry = self.pop(token, user_id) if token else self.recent_for_user(user_id)
        if entry is None:
            raise ValidationTokenNotFoundError(str(user_id), token)

        if not token:
            self.logger.info(
                "Using most recent validation for user",
                user_id=str(user_id),
                validation_token=entry.validation_token
            )
        return entry

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        self._last_sweep = self._clock()
        expired = [token for token, entry in self._entries.items() if self._is_expired(entry)]
        for token in expired:
            del self._entries[token]
        self._stats["expired"] += len(expired)
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {"keys": len(self._entries), **self._stats}

    def __len__(self) -> int:
        return len(self._entries)
