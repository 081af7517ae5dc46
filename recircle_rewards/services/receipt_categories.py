"""
Category hints for transportation receipts.

The upstream classifier may attach a category; when it only knows the merchant
name, ``categorize_store`` maps well-known services to a hint. Hints feed the
confidence router's fraud flag and per-category threshold overrides, and the
review type shown to human reviewers.
"""

from typing import Optional, Sequence, Tuple

from recircle_rewards.models.distribution import ReceiptCategory


# Order matters: the first matching keyword group wins
STORE_KEYWORDS: Sequence[Tuple[ReceiptCategory, Tuple[str, ...]]] = (
    (ReceiptCategory.RIDE_SHARE, ("uber", "lyft", "waymo", "via ")),
    (ReceiptCategory.RAIL, ("amtrak", "rail", "subway", "tram", "streetcar", "train")),
    (ReceiptCategory.TRANSIT, ("transit", "metro", "muni", "bart", "bus")),
    (ReceiptCategory.MICROMOBILITY, ("bike", "scooter", "lime", "bird", "citi bike")),
    (ReceiptCategory.EV, ("tesla", "chargepoint", "electrify america", "evgo")),
    (ReceiptCategory.CAR_SHARE, ("zipcar", "car2go", "hertz", "enterprise", "getaround")),
)

REVIEW_TYPES = {
    ReceiptCategory.TRANSIT: ("PUBLIC TRANSIT VALIDATION",
                              "Public transit receipts vary by city and require manual verification"),
    ReceiptCategory.RAIL: ("RAIL TRANSIT VALIDATION",
                           "Rail/subway receipts have varied formats requiring manual verification"),
    ReceiptCategory.MICROMOBILITY: ("SUSTAINABLE TRANSPORT VALIDATION",
                                    "Bike/scooter sharing receipt needs manual verification"),
    ReceiptCategory.KNOWN_FRAUD_FLAGGED: ("FRAUD REVIEW",
                                          "Receipt matched a known fraud pattern"),
}

DEFAULT_REVIEW_TYPE = ("TRANSPORTATION VALIDATION", "Transportation receipt requires manual validation")


def categorize_store(store_name: Optional[str]) -> ReceiptCategory:
    """Best-effort category hint from a merchant name."""
    if not store_name:
        return ReceiptCategory.UNKNOWN

    name = f"{store_name.lower()} "
    for category, keywords in STORE_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return ReceiptCategory.UNKNOWN


def normalize_category(category: Optional[str]) -> str:
    """Lower-case, strip and default a category hint."""
    if not category:
        return ReceiptCategory.UNKNOWN.value
    if isinstance(category, ReceiptCategory):
        return category.value
    return category.strip().lower()


def review_type_for(category: Optional[str]) -> Tuple[str, str]:
    """(review type, reason) shown to reviewers for a category hint."""
    try:
        return REVIEW_TYPES.get(ReceiptCategory(normalize_category(category)), DEFAULT_REVIEW_TYPE)
    except ValueError:
        return DEFAULT_REVIEW_TYPE
