from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from app.utils.timezone import ensure_aware

Number = Union[int, float, Decimal]

ONE_DECIMAL = Decimal("0.1")
SECONDS_PER_HOUR = Decimal(3600)


def compute(
    base_hours: Number,
    hourly_factor: Number,
    delivered_at: Optional[datetime],
    returned_at: datetime,
) -> float:
    """Wellness hours earned by a returned loan.

    ``base + hours_used * factor``, rounded half-up to one decimal. A loan that
    was never delivered earns the base only; the result is never negative.
    """
    base = max(Decimal(str(base_hours)), Decimal(0))
    factor = max(Decimal(str(hourly_factor)), Decimal(0))

    hours_used = Decimal(0)
    if delivered_at is not None:
        elapsed = ensure_aware(returned_at) - ensure_aware(delivered_at)
        hours_used = max(Decimal(str(elapsed.total_seconds())) / SECONDS_PER_HOUR, Decimal(0))

    total = base + hours_used * factor
    return float(total.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))
