from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, TypedDict

import stripe

from .catalog import CURRENCY
from .errors import SessionCreationFailed

log = logging.getLogger(__name__)


# ----------------------------
# Payment Gateway Interface
# ----------------------------
@dataclass(frozen=True)
class SessionSpec:
    # exactly one line item, quantity 1, priced in minor units
    line_item_name: str
    unit_amount: int
    success_url: str
    cancel_url: str
    metadata: Dict[str, str] = field(default_factory=dict)
    currency: str = CURRENCY


class CreateSessionResult(TypedDict):
    payment_session_id: str
    redirect_url: str


class PaymentGateway(ABC):
    name = "abstract"

    # raises SessionCreationFailed; never touches the ledger
    @abstractmethod
    async def create_session(self, spec: SessionSpec) -> CreateSessionResult:
        ...


# ----------------------------
# Stripe implementation
# ----------------------------
class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, secret_key: Optional[str], timeout: float = 10.0) -> None:
        self.secret_key = secret_key
        self.timeout = timeout
        # the worker thread can't be cancelled; bound the socket instead so
        # it gives up with the caller. retries would stretch past the deadline
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = 0

    @staticmethod
    def session_params(spec: SessionSpec) -> dict:
        return {
            "payment_method_types": ["card"],
            "mode": "payment",
            "line_items": [{
                "price_data": {
                    "currency": spec.currency,
                    "product_data": {"name": spec.line_item_name},
                    "unit_amount": spec.unit_amount,
                },
                "quantity": 1,
            }],
            "metadata": dict(spec.metadata),
            "success_url": spec.success_url,
            "cancel_url": spec.cancel_url,
        }

    async def create_session(self, spec: SessionSpec) -> CreateSessionResult:
        if not self.secret_key:
            raise SessionCreationFailed("Stripe secret key not configured")

        params = self.session_params(spec)
        try:
            # the SDK blocks; keep it off the event loop
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.secret_key,
                **params,
            )
        except stripe.StripeError as e:
            log.error("stripe rejected session create: %s", e)
            raise SessionCreationFailed() from e

        url = getattr(session, "url", None)
        if not url:
            log.error("stripe session %s came back without a url",
                      getattr(session, "id", "?"))
            raise SessionCreationFailed()
        return {"payment_session_id": session.id, "redirect_url": url}
