import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


# ----------------------------
# Helpers
# ----------------------------
def now_ts() -> float:
    return time.time()


def now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def to_money(value) -> Decimal:
    # floats go through str() so 12.5 stays 12.50 and not 12.4999...
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def minor_to_major(minor: int | None) -> Decimal:
    # gateway amounts are integer cents
    try:
        cents = int(minor)
    except (TypeError, ValueError):
        return Decimal("0.00")
    return (Decimal(cents) / 100).quantize(CENT)


def major_to_minor(major: Decimal) -> int:
    return int((major * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
