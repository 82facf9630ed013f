"""
Webhook reconciler.

Per inbound event, terminal on either branch:

  verify   -> signature over the raw body (or the explicit unsigned dev mode)
  classify -> only `checkout.session.completed` mutates the ledger
  extract  -> metadata, collected amount (cents -> dollars), buyer label
  apply    -> donation or rank purchase, under the ledger gate
  persist  -> done by SerializedLedger.mutate()

Only verification can fail the request. Everything after it degrades to
documented defaults: the gateway will not redeliver an event we answered
with 2xx, so a best-effort record beats a lost one.

Note: delivery is at-least-once and events are not deduplicated; the same
completed session delivered twice is recorded twice.
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

import stripe

from .errors import WebhookVerificationFailed
from .model.ledger import DonationRecord, Ledger, PurchaseRecord
from .model.ledgerstore import SerializedLedger
from .model.metadata import Donation, RankPurchase, from_session
from .helpers import minor_to_major, now_iso

log = logging.getLogger(__name__)

EVENT_COMPLETED = "checkout.session.completed"
SIGNATURE_TOLERANCE_SECONDS = 300

Record = Union[DonationRecord, PurchaseRecord]


def _decode(payload: bytes) -> Dict[str, Any]:
    try:
        event = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        raise WebhookVerificationFailed("Invalid payload")
    if not isinstance(event, dict):
        raise WebhookVerificationFailed("Invalid payload")
    return event


def verify_event(payload: bytes, signature: Optional[str],
                 secret: Optional[str], *,
                 allow_unsigned: bool = False) -> Dict[str, Any]:
    if secret:
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature or "", secret,
                SIGNATURE_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationFailed(str(e) or "Invalid signature")
        except UnicodeDecodeError:
            raise WebhookVerificationFailed("Invalid payload")
        return _decode(payload)

    if allow_unsigned:
        # UNSAFE: dev only. Anyone who can reach /webhook can write records.
        log.warning("accepting UNSIGNED webhook event "
                    "(WEBHOOK_ALLOW_UNSIGNED is on)")
        return _decode(payload)

    raise WebhookVerificationFailed("webhook signing secret not configured")


def apply_completed_session(ledger: Ledger, session: Mapping[str, Any],
                            timestamp: Optional[str] = None) -> Record:
    intent = from_session(session)
    amount = minor_to_major(session.get("amount_total"))
    timestamp = timestamp or now_iso()

    match intent:
        case Donation(buyer_label=buyer):
            rec = ledger.add_donation(buyer, amount, timestamp)
            log.info("recorded donation: %s %s", buyer, amount)
            return rec
        case RankPurchase(buyer_label=buyer, product_id=product):
            rec = ledger.add_purchase(buyer, product, amount, timestamp)
            log.info("recorded purchase: %s %s %s", buyer, product, amount)
            return rec
    raise TypeError(f"unhandled intent {intent!r}")


async def reconcile(event: Mapping[str, Any],
                    ledgers: SerializedLedger) -> Optional[Record]:
    """Returns the record written, or None for acknowledged no-ops."""
    event_type = event.get("type")
    if event_type != EVENT_COMPLETED:
        log.info("ignoring webhook event %s (%s)", event.get("id"),
                 event_type)
        return None

    data = event.get("data") or {}
    session = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(session, Mapping):
        session = {}

    async with ledgers.mutate() as ledger:
        return apply_completed_session(ledger, session)
