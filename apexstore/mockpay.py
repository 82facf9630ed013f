"""
MockPay: a development stand-in for the hosted payment page.

Sessions are kept in memory. The buyer is redirected to /mockpay/{psid};
POST /mockpay/{psid}/emit delivers a Stripe-shaped event to the webhook,
signed in Stripe's `t=...,v1=...` header format when a signing secret is
configured, exactly like the real gateway would.
"""
from __future__ import annotations
import hashlib
import hmac
import json
import time
import uuid
from typing import Any, Dict, Optional

from .gateway import CreateSessionResult, PaymentGateway, SessionSpec
from .helpers import now_ts

SIGNATURE_HEADER = "stripe-signature"

EVENT_COMPLETED = "checkout.session.completed"
EVENT_EXPIRED = "checkout.session.expired"


def sign_payload(payload: bytes, secret: str,
                 timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else int(timestamp)
    signed = f"{ts}.".encode() + payload
    mac = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={mac}"


def build_event(event_type: str, session: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": f"evt_{uuid.uuid4().hex}",
        "object": "event",
        "type": event_type,
        "created": int(now_ts()),
        "data": {"object": session},
    }


class MockPay(PaymentGateway):
    name = "mock"

    def __init__(self) -> None:
        self.sessions: Dict[str, Dict[str, Any]] = {}

    async def create_session(self, spec: SessionSpec) -> CreateSessionResult:
        psid = f"cs_mock_{uuid.uuid4().hex}"
        self.sessions[psid] = {
            "id": psid,
            "object": "checkout.session",
            "mode": "payment",
            "line_item": spec.line_item_name,
            "amount_total": spec.unit_amount,
            "currency": spec.currency,
            "metadata": dict(spec.metadata),
            "customer_details": {"email": None},
            "payment_status": "unpaid",
            "status": "open",
            "success_url": spec.success_url.replace(
                "{CHECKOUT_SESSION_ID}", psid),
            "cancel_url": spec.cancel_url,
            "created": int(now_ts()),
        }
        return {"payment_session_id": psid,
                "redirect_url": f"/mockpay/{psid}"}

    def get_session(self, psid: str) -> Optional[Dict[str, Any]]:
        return self.sessions.get(psid)

    def outcome_event(self, psid: str, kind: str) -> Dict[str, Any]:
        # kind: succeeded | canceled
        session = self.sessions[psid]
        if kind == "succeeded":
            session.update(status="complete", payment_status="paid")
            return build_event(EVENT_COMPLETED, dict(session))
        session.update(status="expired")
        return build_event(EVENT_EXPIRED, dict(session))

    @staticmethod
    def encode_event(event: Dict[str, Any],
                     secret: Optional[str]) -> tuple[bytes, Dict[str, str]]:
        payload = json.dumps(event).encode()
        headers = {"content-type": "application/json"}
        if secret:
            headers[SIGNATURE_HEADER] = sign_payload(payload, secret)
        return payload, headers
