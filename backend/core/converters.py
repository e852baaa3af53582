from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Union[Decimal, float, int, str, None]) -> Decimal:
    """Normalize a price/amount to a 2-decimal Decimal (half-up)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        # str() first so floats like 0.1 don't drag binary noise along
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
