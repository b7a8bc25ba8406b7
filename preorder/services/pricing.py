"""
Price Calculator

Order totals are derived server-side from the item and its options; the
client never supplies a price. All amounts are integer cents.
"""

from typing import Any, Optional

BAGEL_BASE_CENTS = 300
BAGEL_SPREAD_CENTS = 100
BAGEL_HASHBROWN_CENTS = 100

SANDWICH_BASE_CENTS = 700
SANDWICH_EXTRA_MEAT_CENTS = 200
SANDWICH_HASHBROWN_CENTS = 100


def calculate_total_cents(item: str, options: Optional[dict[str, Any]]) -> int:
    """
    Compute the total for one order.

    Bagel and sandwich read the hashbrown option differently: any truthy
    value counts for a bagel, while a sandwich also treats ``"none"`` as no
    hashbrown. Unknown items price at 0.

    Args:
        item: "bagel" or "sandwich"
        options: Item-specific choices (spread, hashbrown, extraMeat)

    Returns:
        Total in cents
    """
    options = options or {}

    if item == "bagel":
        total = BAGEL_BASE_CENTS
        spread = options.get("spread")
        if spread and spread != "None":
            total += BAGEL_SPREAD_CENTS
        if options.get("hashbrown"):
            total += BAGEL_HASHBROWN_CENTS
        return total

    if item == "sandwich":
        total = SANDWICH_BASE_CENTS
        extra_meat = options.get("extraMeat")
        if extra_meat and extra_meat != "none":
            total += SANDWICH_EXTRA_MEAT_CENTS
        hashbrown = options.get("hashbrown")
        if hashbrown and hashbrown != "none":
            total += SANDWICH_HASHBROWN_CENTS
        return total

    return 0
