from decimal import Decimal

import pytest

from apexstore.errors import StorageError
from apexstore.model.ledger import Ledger, RECENT_FEEDBACK, TOP_DONATIONS


def test_donation_lands_at_head_and_list_stays_sorted():
    ledger = Ledger()
    for name, amount in [("a", "5.00"), ("b", "10.00"), ("c", "1.00")]:
        ledger.add_donation(name, Decimal(amount))

    rec = ledger.add_donation("Steve", Decimal("12.50"))

    assert ledger.donations[0] is rec
    assert rec.buyer_label == "Steve"
    assert rec.amount == Decimal("12.50")
    amounts = [d.amount for d in ledger.donations]
    assert amounts == sorted(amounts, reverse=True)


def test_51st_donation_evicts_the_smallest():
    ledger = Ledger()
    for i in range(1, 51):
        ledger.add_donation(f"donor{i}", Decimal(i) + Decimal("0.50"))
    assert len(ledger.donations) == TOP_DONATIONS

    ledger.add_donation("late", Decimal("25.00"))

    assert len(ledger.donations) == TOP_DONATIONS
    names = [d.buyer_label for d in ledger.donations]
    assert "donor1" not in names
    assert "late" in names
    assert ledger.donations[-1].amount == Decimal("2.50")


def test_equal_donations_keep_arrival_order():
    ledger = Ledger()
    ledger.add_donation("first", Decimal("5"))
    ledger.add_donation("second", Decimal("5"))
    ledger.add_donation("big", Decimal("9"))

    assert [d.buyer_label for d in ledger.donations] == \
        ["big", "first", "second"]


def test_201_feedback_keeps_newest_200():
    ledger = Ledger()
    for i in range(201):
        ledger.add_feedback(f"user{i}", "disc#1", "bug", f"message {i}")

    assert len(ledger.feedback) == RECENT_FEEDBACK
    assert ledger.feedback[0].message == "message 200"
    assert ledger.feedback[-1].message == "message 1"
    assert all(f.message != "message 0" for f in ledger.feedback)


def test_purchases_are_unbounded_and_insertion_ordered():
    ledger = Ledger()
    for i in range(120):
        ledger.add_purchase(f"p{i}", "vip", Decimal("4.99"))

    assert len(ledger.purchases) == 120
    assert ledger.purchases[0].buyer_label == "p0"
    assert ledger.purchases[-1].buyer_label == "p119"


def test_document_layout_matches_db_json():
    ledger = Ledger()
    ledger.add_donation("Steve", Decimal("12.5"), "2026-01-01T00:00:00+00:00")
    ledger.add_purchase("Alex", "mvp", Decimal("9.99"), "2026-01-02T00:00:00")
    ledger.add_feedback("Kim", "kim#0001", "idea", "more maps", "2026-01-03")

    doc = ledger.to_dict()

    assert doc == {
        "donators": [{"name": "Steve", "amount": 12.5,
                      "date": "2026-01-01T00:00:00+00:00"}],
        "purchases": [{"username": "Alex", "rank": "mvp", "amount": 9.99,
                       "date": "2026-01-02T00:00:00"}],
        "feedback": [{"name": "Kim", "discord": "kim#0001", "type": "idea",
                      "message": "more maps", "date": "2026-01-03"}],
    }
    again = Ledger.loads(ledger.dumps())
    assert again.donations[0].amount == Decimal("12.50")
    assert again.purchases[0].product_id == "mvp"


def test_loads_none_is_empty_ledger():
    ledger = Ledger.loads(None)
    assert ledger.donations == [] and ledger.purchases == []
    assert ledger.feedback == []


@pytest.mark.parametrize("raw", [
    b"{not json",
    b"[1, 2, 3]",
    b'{"donators": [{"amount": 3}]}',
    b'{"donators": [{"name": "x", "amount": "lots"}]}',
])
def test_unreadable_documents_raise_storage_error(raw):
    with pytest.raises(StorageError):
        Ledger.loads(raw)
