from typing import Optional

CURRENCY = "usd"

# sentinel product value meaning "this is a donation"
DONATION = "donation"

# unit prices, USD cents
PRICE_MAP = {"vip": 499, "mvp": 999, "legend": 1999}


def normalize(product_id: Optional[str]) -> str:
    return (product_id or "").strip().lower()


def price_of(product_id: Optional[str]) -> Optional[int]:
    return PRICE_MAP.get(normalize(product_id))


def label_of(product_id: str) -> str:
    return f"{normalize(product_id).upper()} Rank"

# largest single charge the gateway accepts, cents
MAX_UNIT_AMOUNT = 99_999_999
