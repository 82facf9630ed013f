# Session issuer: validate a storefront request, build the gateway session
# with reconciliation metadata attached, hand back the hosted page URL.
# Stateless; nothing here writes to the ledger.
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from . import catalog
from .errors import InvalidAmount, SessionCreationFailed, UnknownProduct
from .gateway import PaymentGateway, SessionSpec
from .helpers import CENT, major_to_minor
from .infra.timings import timeit
from .model.metadata import ANONYMOUS, Donation, Intent, RankPurchase
from .model.metadata import to_metadata

log = logging.getLogger(__name__)

DEFAULT_SUCCESS_PATH = "/store/success.html?session_id={CHECKOUT_SESSION_ID}"
DEFAULT_CANCEL_PATH = "/store/cancel.html"

MAX_AMOUNT = Decimal(catalog.MAX_UNIT_AMOUNT) / 100


@dataclass(frozen=True)
class SessionRequest:
    intent: Intent
    unit_amount: int  # minor units
    line_item_name: str


def parse_amount(raw: Any) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise InvalidAmount()
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount()
    if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
        raise InvalidAmount()
    # must survive rounding to whole cents
    try:
        cents = major_to_minor(amount)
    except InvalidOperation:
        raise InvalidAmount()
    if cents < 1 or cents > catalog.MAX_UNIT_AMOUNT:
        raise InvalidAmount()
    return amount


def is_donation(payload: Mapping[str, Any]) -> bool:
    kind = payload.get("type")
    if kind and str(kind).strip().lower() == catalog.DONATION:
        return True
    return catalog.normalize(payload.get("rank")) == catalog.DONATION


def parse_request(payload: Mapping[str, Any]) -> SessionRequest:
    """
    Validation order: kind first (explicit `type`, or the sentinel rank
    "donation"), then the donation amount or the catalog lookup.
    """
    buyer = str(payload.get("minecraft_username") or "").strip() or ANONYMOUS

    if is_donation(payload):
        amount = parse_amount(payload.get("amount"))
        cents = major_to_minor(amount)
        shown = (Decimal(cents) / 100).quantize(CENT)
        return SessionRequest(
            intent=Donation(buyer_label=buyer),
            unit_amount=cents,
            line_item_name=f"Donation (${shown} USD)",
        )

    rank = catalog.normalize(payload.get("rank"))
    price = catalog.price_of(rank)
    if not rank or price is None:
        raise UnknownProduct()
    return SessionRequest(
        intent=RankPurchase(buyer_label=buyer, product_id=rank),
        unit_amount=price,
        line_item_name=catalog.label_of(rank),
    )


def build_spec(req: SessionRequest, origin: str,
               success_path: str = DEFAULT_SUCCESS_PATH,
               cancel_path: str = DEFAULT_CANCEL_PATH) -> SessionSpec:
    origin = origin.rstrip("/")
    return SessionSpec(
        line_item_name=req.line_item_name,
        unit_amount=req.unit_amount,
        metadata=to_metadata(req.intent),
        success_url=f"{origin}{success_path}",
        cancel_url=f"{origin}{cancel_path}",
    )


async def create_session(
    gateway: PaymentGateway,
    payload: Mapping[str, Any],
    origin: str,
    *,
    timeout: float,
    success_path: str = DEFAULT_SUCCESS_PATH,
    cancel_path: str = DEFAULT_CANCEL_PATH,
) -> str:
    """Returns the gateway-hosted URL the buyer is sent to (303)."""
    req = parse_request(payload)
    spec = build_spec(req, origin, success_path, cancel_path)

    try:
        async with timeit("gateway.create_session"):
            result = await asyncio.wait_for(gateway.create_session(spec),
                                            timeout=timeout)
    except asyncio.TimeoutError as e:
        log.error("%s gateway: session create timed out after %.1fs",
                  gateway.name, timeout)
        raise SessionCreationFailed() from e
    except SessionCreationFailed:
        raise
    except Exception as e:
        # network, malformed request, anything else from the adapter
        log.exception("%s gateway: session create failed", gateway.name)
        raise SessionCreationFailed() from e

    redirect_url = result.get("redirect_url")
    if not redirect_url:
        raise SessionCreationFailed()
    log.info("issued session %s (%s, %d cents)",
             result.get("payment_session_id"), req.line_item_name,
             req.unit_amount)
    return redirect_url


def request_origin(headers: Mapping[str, str], scheme: str,
                   fallback_host: Optional[str] = None) -> str:
    origin = headers.get("origin")
    if origin and origin != "null":
        return origin
    host = headers.get("host") or fallback_host or "localhost"
    return f"{scheme}://{host}"
