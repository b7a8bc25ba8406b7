"""Phone number normalization for SMS delivery."""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: Optional[str]) -> str:
    """
    Reshape a customer phone number into ``+<country><number>`` form.

    Best effort only: malformed numbers are never rejected, the SMS provider
    simply fails to deliver to them.

    >>> normalize_phone("(555) 123-4567")
    '+15551234567'
    """
    digits = _NON_DIGITS.sub("", raw or "")

    if len(digits) == 11 and digits.startswith("1"):
        return "+" + digits

    if len(digits) == 10:
        return "+1" + digits

    return "+" + digits
