"""
Confidence router: maps a validation confidence score and category hint to a
distribution mode.

Routing is a pure function of its inputs and the policy; it performs no I/O.
"""

import math
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Tuple

from recircle_rewards.core.exceptions import InvalidConfidenceError
from recircle_rewards.models.distribution import DistributionMode, ReceiptCategory
from recircle_rewards.services.receipt_categories import normalize_category


@dataclass(frozen=True)
class RoutingPolicy:
    """Confidence thresholds and category rules."""
    high_threshold: float = 0.85
    medium_threshold: float = 0.70
    fraud_flagged_categories: FrozenSet[str] = frozenset({ReceiptCategory.KNOWN_FRAUD_FLAGGED.value})
    # category -> (high, medium) overrides
    category_thresholds: Mapping[str, Tuple[float, float]] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.medium_threshold <= self.high_threshold <= 1.0:
            raise ValueError("Thresholds must satisfy 0 <= medium <= high <= 1")
        for category, (high, medium) in self.category_thresholds.items():
            if not 0.0 <= medium <= high <= 1.0:
                raise ValueError(f"Invalid thresholds for category {category}")

    def thresholds_for(self, category: str) -> Tuple[float, float]:
        return self.category_thresholds.get(category, (self.high_threshold, self.medium_threshold))

    def is_fraud_flagged(self, category: str) -> bool:
        return category in self.fraud_flagged_categories


@dataclass(frozen=True)
class RoutingDecision:
    """Chosen mode plus the human-readable reason recorded on the distribution."""
    mode: DistributionMode
    reason: str


DEFAULT_POLICY = RoutingPolicy()


def route_receipt(
    confidence_score: float,
    category: Optional[str] = None,
    policy: RoutingPolicy = DEFAULT_POLICY
) -> RoutingDecision:
    """
    Decide how a reward is distributed.

    Args:
        confidence_score: Classifier confidence in [0, 1]
        category: Optional category hint
        policy: Thresholds and category rules

    Returns:
        RoutingDecision with the mode and reason

    Raises:
        InvalidConfidenceError: If the score is not a number in [0, 1]
    """
    if isinstance(confidence_score, bool) or not isinstance(confidence_score, (int, float)):
        raise InvalidConfidenceError(confidence_score)
    if math.isnan(confidence_score) or not 0.0 <= confidence_score <= 1.0:
        raise InvalidConfidenceError(confidence_score)

    category = normalize_category(category)
    if policy.is_fraud_flagged(category):
        return RoutingDecision(
            DistributionMode.MANUAL_REVIEW,
            f"Category '{category}' is flagged for fraud review"
        )

    high, medium = policy.thresholds_for(category)
    if confidence_score >= high:
        return RoutingDecision(
            DistributionMode.IMMEDIATE,
            f"Confidence {confidence_score} >= {high}"
        )
    if confidence_score >= medium:
        return RoutingDecision(
            DistributionMode.PENDING,
            f"Confidence {confidence_score} in [{medium}, {high})"
        )
    return RoutingDecision(
        DistributionMode.MANUAL_REVIEW,
        f"Low confidence ({confidence_score} < {medium})"
    )


def route(
    confidence_score: float,
    category: Optional[str] = None,
    policy: RoutingPolicy = DEFAULT_POLICY
) -> DistributionMode:
    """Distribution mode for a confidence score and category hint."""
    return route_receipt(confidence_score, category, policy).mode
