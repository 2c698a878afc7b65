from __future__ import annotations

import enum


class HomeCurrency(str, enum.Enum):
    """Values of the deal's "Currency" selector field."""

    USD = "Dollar"
    EUR = "Euro"
    RUB = "Рубли"


class DealOutcome(str, enum.Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"
