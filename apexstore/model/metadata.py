# model/metadata.py
#
# Reconciliation metadata: attached to a gateway session when it is created,
# echoed back verbatim on completion. No local session table exists, so this
# is the only link between an outbound session and its confirmation event.
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from ..catalog import DONATION

ANONYMOUS = "Anonymous"
UNKNOWN_PRODUCT = "unknown"

# wire keys (gateway metadata is a flat string map)
K_BUYER = "minecraft_username"
K_KIND = "type"
K_PRODUCT = "rank"

KIND_RANK = "rank"
KIND_DONATION = "donation"


@dataclass(frozen=True)
class RankPurchase:
    buyer_label: str
    product_id: str


@dataclass(frozen=True)
class Donation:
    buyer_label: str


Intent = Union[RankPurchase, Donation]


def to_metadata(intent: Intent) -> Dict[str, str]:
    match intent:
        case Donation(buyer_label=buyer):
            return {K_BUYER: buyer, K_KIND: KIND_DONATION}
        case RankPurchase(buyer_label=buyer, product_id=product):
            return {K_BUYER: buyer, K_KIND: KIND_RANK, K_PRODUCT: product}
    raise TypeError(f"not a reconciliation intent: {intent!r}")


def from_metadata(md: Optional[Mapping[str, Any]],
                  fallback_label: Optional[str] = None) -> Intent:
    """
    Decode metadata echoed back by the gateway. Never fails:
      - buyer: metadata, else `fallback_label` (contact email), else
        "Anonymous"
      - kind: explicit `type`; without it, `rank` present means a rank
        purchase, otherwise a donation. `rank == "donation"` is a donation.
      - product of a rank purchase: `rank`, else "unknown"
    """
    if not isinstance(md, Mapping):
        md = {}
    buyer = md.get(K_BUYER) or fallback_label or ANONYMOUS
    product = md.get(K_PRODUCT)
    kind = md.get(K_KIND) or (KIND_RANK if product else KIND_DONATION)

    if kind == KIND_DONATION or product == DONATION:
        return Donation(buyer_label=str(buyer))
    return RankPurchase(buyer_label=str(buyer),
                        product_id=str(product or UNKNOWN_PRODUCT))


def from_session(session: Mapping[str, Any]) -> Intent:
    details = session.get("customer_details")
    if not isinstance(details, Mapping):
        details = {}
    return from_metadata(session.get("metadata"), details.get("email"))
