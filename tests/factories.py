import asyncio
import json
from typing import Any, Dict, Optional

from apexstore.gateway import PaymentGateway, SessionSpec
from apexstore.mockpay import SIGNATURE_HEADER, sign_payload
from apexstore.model.ledgerstore import MemoryLedgerStore

WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(PaymentGateway):
    name = "fake"

    def __init__(self, fail: Optional[Exception] = None,
                 delay: float = 0.0) -> None:
        self.calls = []
        self.fail = fail
        self.delay = delay

    async def create_session(self, spec: SessionSpec):
        self.calls.append(spec)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        psid = f"cs_test_{len(self.calls)}"
        return {"payment_session_id": psid,
                "redirect_url": f"https://checkout.example/pay/{psid}"}


class SlowMemoryStore(MemoryLedgerStore):
    # yields to the loop between read and write so interleavings happen
    async def read(self):
        ledger = await super().read()
        await asyncio.sleep(0.01)
        return ledger


def completed_session(metadata: Optional[Dict[str, str]] = None,
                      amount_total: Optional[int] = 1250,
                      email: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": "cs_test_abc",
        "object": "checkout.session",
        "amount_total": amount_total,
        "currency": "usd",
        "metadata": metadata if metadata is not None else {},
        "customer_details": {"email": email},
        "payment_status": "paid",
    }


def event(session: Dict[str, Any],
          event_type: str = "checkout.session.completed",
          event_id: str = "evt_test_1") -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": session},
    }


def donation_event(buyer: str = "Steve", cents: int = 1250, **kw):
    md = {"minecraft_username": buyer, "type": "donation"}
    return event(completed_session(md, cents), **kw)


def purchase_event(buyer: str = "Alex", rank: str = "vip",
                   cents: int = 499, **kw):
    md = {"minecraft_username": buyer, "type": "rank", "rank": rank}
    return event(completed_session(md, cents), **kw)


def signed(evt: Dict[str, Any], secret: str = WEBHOOK_SECRET):
    payload = json.dumps(evt).encode()
    headers = {"content-type": "application/json",
               SIGNATURE_HEADER: sign_payload(payload, secret)}
    return payload, headers
