# model/ledger.py
from __future__ import annotations
import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..errors import StorageError
from ..helpers import now_iso, to_money

TOP_DONATIONS = 50
RECENT_FEEDBACK = 200


# ----------------------------
# Records
# ----------------------------
@dataclass
class DonationRecord:
    buyer_label: str
    amount: Decimal
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.buyer_label,
            "amount": float(self.amount),
            "date": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> DonationRecord:
        return cls(
            buyer_label=str(d["name"]),
            amount=to_money(d.get("amount") or 0),
            timestamp=str(d.get("date", "")),
        )


@dataclass
class PurchaseRecord:
    buyer_label: str
    product_id: str
    amount: Decimal
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.buyer_label,
            "rank": self.product_id,
            "amount": float(self.amount),
            "date": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> PurchaseRecord:
        return cls(
            buyer_label=str(d["username"]),
            product_id=str(d.get("rank") or "unknown"),
            amount=to_money(d.get("amount") or 0),
            timestamp=str(d.get("date", "")),
        )


@dataclass
class FeedbackRecord:
    name: Optional[str]
    contact_handle: Optional[str]
    category: Optional[str]
    message: Optional[str]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "discord": self.contact_handle,
            "type": self.category,
            "message": self.message,
            "date": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> FeedbackRecord:
        return cls(
            name=d.get("name"),
            contact_handle=d.get("discord"),
            category=d.get("type"),
            message=d.get("message"),
            timestamp=str(d.get("date", "")),
        )


# ----------------------------
# Aggregate
# ----------------------------
@dataclass
class Ledger:
    """
    The unit of persistence: donations (top 50, largest first), purchases
    (all of them, oldest first) and feedback (latest 200, newest first).

    Serialized as the original `db.json` document:
      {"donators": [...], "purchases": [...], "feedback": [...]}
    """
    donations: List[DonationRecord] = field(default_factory=list)
    purchases: List[PurchaseRecord] = field(default_factory=list)
    feedback: List[FeedbackRecord] = field(default_factory=list)

    def add_donation(self, buyer_label: str, amount: Decimal,
                     timestamp: Optional[str] = None) -> DonationRecord:
        rec = DonationRecord(buyer_label, to_money(amount),
                             timestamp or now_iso())
        self.donations.append(rec)
        # stable: equal amounts keep their arrival order
        self.donations.sort(key=lambda d: d.amount, reverse=True)
        del self.donations[TOP_DONATIONS:]
        return rec

    def add_purchase(self, buyer_label: str, product_id: str,
                     amount: Decimal,
                     timestamp: Optional[str] = None) -> PurchaseRecord:
        rec = PurchaseRecord(buyer_label, product_id, to_money(amount),
                             timestamp or now_iso())
        self.purchases.append(rec)
        return rec

    def add_feedback(self, name, contact_handle, category, message,
                     timestamp: Optional[str] = None) -> FeedbackRecord:
        rec = FeedbackRecord(name, contact_handle, category, message,
                             timestamp or now_iso())
        self.feedback.insert(0, rec)
        del self.feedback[RECENT_FEEDBACK:]
        return rec

    def to_dict(self) -> Dict[str, Any]:
        return {
            "donators": [d.to_dict() for d in self.donations],
            "purchases": [p.to_dict() for p in self.purchases],
            "feedback": [f.to_dict() for f in self.feedback],
        }

    @classmethod
    def from_dict(cls, doc: Any) -> Ledger:
        if not isinstance(doc, dict):
            raise StorageError("ledger document is not an object")
        try:
            return cls(
                donations=[DonationRecord.from_dict(d)
                           for d in doc.get("donators") or []],
                purchases=[PurchaseRecord.from_dict(p)
                           for p in doc.get("purchases") or []],
                feedback=[FeedbackRecord.from_dict(f)
                          for f in doc.get("feedback") or []],
            )
        except (KeyError, TypeError, AttributeError,
                InvalidOperation, ValueError) as e:
            raise StorageError(f"malformed ledger record: {e!r}") from e

    def dumps(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def loads(cls, raw: str | bytes | None) -> Ledger:
        if raw is None:
            return cls()
        try:
            doc = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise StorageError(f"ledger document is not JSON: {e}") from e
        return cls.from_dict(doc)
