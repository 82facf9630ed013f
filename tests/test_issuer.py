from types import SimpleNamespace

import pytest
import stripe

from apexstore import issuer
from apexstore.catalog import PRICE_MAP, price_of
from apexstore.errors import (
    InvalidAmount, SessionCreationFailed, UnknownProduct
)
from apexstore.gateway import StripeGateway

from factories import FakeGateway

ORIGIN = "https://store.apexhunter.example"


def test_catalog_lookup():
    assert price_of("vip") == 499
    assert price_of(" MVP ") == 999
    assert price_of("diamond") is None
    assert price_of(None) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("rank", sorted(PRICE_MAP))
async def test_rank_session_is_priced_from_catalog(rank):
    gw = FakeGateway()
    url = await issuer.create_session(
        gw, {"rank": rank, "minecraft_username": "Alex"}, ORIGIN, timeout=1,
    )

    assert url.startswith("https://checkout.example/pay/")
    [spec] = gw.calls
    assert spec.unit_amount == PRICE_MAP[rank]
    assert spec.line_item_name == f"{rank.upper()} Rank"
    assert spec.metadata == {"minecraft_username": "Alex", "type": "rank",
                             "rank": rank}


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"rank": "diamond"}, {"rank": ""}, {}, {"type": "rank"},
])
async def test_unknown_rank_never_reaches_gateway(payload):
    gw = FakeGateway()
    with pytest.raises(UnknownProduct):
        await issuer.create_session(gw, payload, ORIGIN, timeout=1)
    assert gw.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [
    None, "", "abc", "0", "0.00", "-5", "-0.01", "NaN", "Infinity",
    "0.001", "12abc", "1e30", "1e26", "1000000.00",
])
async def test_bad_donation_amount_never_reaches_gateway(amount):
    gw = FakeGateway()
    payload = {"type": "donation", "amount": amount}
    with pytest.raises(InvalidAmount):
        await issuer.create_session(gw, payload, ORIGIN, timeout=1)
    assert gw.calls == []


def test_amount_at_gateway_ceiling_accepted():
    req = issuer.parse_request({"type": "donation", "amount": "999999.99"})
    assert req.unit_amount == 99_999_999


@pytest.mark.asyncio
async def test_donation_session():
    gw = FakeGateway()
    await issuer.create_session(
        gw, {"type": "Donation", "amount": "12.5"}, ORIGIN + "/", timeout=1,
    )

    [spec] = gw.calls
    assert spec.unit_amount == 1250
    assert spec.line_item_name == "Donation ($12.50 USD)"
    assert spec.currency == "usd"
    assert spec.metadata == {"minecraft_username": "Anonymous",
                             "type": "donation"}
    assert spec.success_url == \
        f"{ORIGIN}/store/success.html?session_id={{CHECKOUT_SESSION_ID}}"
    assert spec.cancel_url == f"{ORIGIN}/store/cancel.html"


def test_sentinel_rank_selects_donation_flow():
    req = issuer.parse_request({"rank": "donation", "amount": "3"})
    assert req.unit_amount == 300
    assert req.intent.buyer_label == "Anonymous"


@pytest.mark.asyncio
async def test_gateway_timeout_is_session_creation_failure():
    gw = FakeGateway(delay=1.0)
    with pytest.raises(SessionCreationFailed):
        await issuer.create_session(gw, {"rank": "vip"}, ORIGIN,
                                    timeout=0.05)


@pytest.mark.asyncio
async def test_gateway_error_is_session_creation_failure():
    gw = FakeGateway(fail=ConnectionError("reset by peer"))
    with pytest.raises(SessionCreationFailed) as exc:
        await issuer.create_session(gw, {"rank": "vip"}, ORIGIN, timeout=1)
    # details stay in the log
    assert "reset by peer" not in exc.value.message


def test_request_origin():
    assert issuer.request_origin({"origin": ORIGIN}, "http") == ORIGIN
    assert issuer.request_origin({"host": "localhost:3000"}, "http") == \
        "http://localhost:3000"
    assert issuer.request_origin({"origin": "null", "host": "a.b"},
                                 "https") == "https://a.b"


# ----------------------------
# Stripe adapter
# ----------------------------
def _spec():
    req = issuer.parse_request({"rank": "legend",
                                "minecraft_username": "Alex"})
    return issuer.build_spec(req, ORIGIN)


@pytest.mark.asyncio
async def test_stripe_gateway_requires_secret_key():
    with pytest.raises(SessionCreationFailed):
        await StripeGateway(None).create_session(_spec())


@pytest.mark.asyncio
async def test_stripe_gateway_builds_one_line_item(monkeypatch):
    seen = {}

    def fake_create(**kwargs):
        seen.update(kwargs)
        return SimpleNamespace(id="cs_live_1",
                               url="https://checkout.stripe.com/c/cs_live_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    result = await StripeGateway("sk_test_x").create_session(_spec())

    assert result == {"payment_session_id": "cs_live_1",
                      "redirect_url": "https://checkout.stripe.com/c/cs_live_1"}
    assert seen["api_key"] == "sk_test_x"
    assert seen["mode"] == "payment"
    assert seen["line_items"] == [{
        "price_data": {"currency": "usd",
                       "product_data": {"name": "LEGEND Rank"},
                       "unit_amount": 1999},
        "quantity": 1,
    }]
    assert seen["metadata"]["rank"] == "legend"


@pytest.mark.asyncio
async def test_stripe_error_is_session_creation_failure(monkeypatch):
    def fake_create(**kwargs):
        raise stripe.StripeError("No such price")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    with pytest.raises(SessionCreationFailed):
        await StripeGateway("sk_test_x").create_session(_spec())


def test_stripe_gateway_bounds_http_calls(monkeypatch):
    # the SDK client is process-global; restore it after the test
    monkeypatch.setattr(stripe, "default_http_client", None)
    monkeypatch.setattr(stripe, "max_network_retries", 2)

    StripeGateway("sk_test_x", timeout=3.0)

    client = stripe.default_http_client
    assert isinstance(client, stripe.RequestsClient)
    assert client._timeout == 3.0
    assert stripe.max_network_retries == 0
