from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx
import redis.asyncio as redis
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import (
    JSONResponse, ORJSONResponse, PlainTextResponse, RedirectResponse
)
from starlette.status import HTTP_303_SEE_OTHER

from . import issuer
from .config import Settings, configure_logging
from .errors import ApexStoreError, WebhookVerificationFailed
from .feedback import submit_feedback
from .gateway import PaymentGateway, StripeGateway
from .infra.timings import install_shutdown_report
from .mockpay import SIGNATURE_HEADER, MockPay
from .model.ledgerstore import LedgerStore, SerializedLedger, new_store
from .queries import top_donors
from .reconciler import reconcile, verify_event

log = logging.getLogger(__name__)

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


# ----------------------------
# Dependencies
# ----------------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def ledgers(request: Request) -> SerializedLedger:
    return request.app.state.ledgers


def payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


# ----------------------------
# Helpers
# ----------------------------
async def read_payload(request: Request) -> Dict[str, Any]:
    # form post, JSON body, or query string; query params win
    payload: Dict[str, Any] = {}
    ctype = request.headers.get("content-type", "")
    if "application/json" in ctype:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            payload.update(body)
    elif ctype.startswith(FORM_TYPES):
        form = await request.form()
        payload.update(form.items())
    payload.update(request.query_params.items())
    return payload


def build_gateway(settings: Settings) -> PaymentGateway:
    if settings.gateway_backend == "mock":
        return MockPay()
    if settings.gateway_backend == "stripe":
        return StripeGateway(settings.stripe_secret_key,
                             timeout=settings.gateway_timeout)
    raise RuntimeError(
        f"unknown gateway backend: {settings.gateway_backend!r}"
    )


def build_store(settings: Settings) -> LedgerStore:
    if settings.ledger_backend == "redis":
        r = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )
        return new_store("redis", r=r, key=settings.ledger_redis_key)
    return new_store(settings.ledger_backend, path=settings.ledger_path)


# ----------------------------
# Public API
# ----------------------------
router = APIRouter()


@router.post("/webhook")
async def gateway_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    lg: SerializedLedger = Depends(ledgers),
):
    # signature covers the raw bytes; read them before anything parses
    payload = await request.body()
    try:
        event = verify_event(
            payload,
            request.headers.get(SIGNATURE_HEADER),
            settings.stripe_webhook_secret,
            allow_unsigned=settings.allow_unsigned_webhooks,
        )
    except WebhookVerificationFailed as e:
        log.warning("webhook rejected: %s", e.reason)
        raise

    await reconcile(event, lg)
    return {"received": True}


@router.post("/api/create-checkout")
async def create_checkout(
    request: Request,
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(payment_gateway),
):
    payload = await read_payload(request)
    origin = issuer.request_origin(request.headers, request.url.scheme,
                                   request.url.netloc)
    url = await issuer.create_session(
        gateway, payload, origin,
        timeout=settings.gateway_timeout,
        success_path=settings.success_path,
        cancel_path=settings.cancel_path,
    )
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


@router.post("/api/feedback")
async def feedback(request: Request,
                   lg: SerializedLedger = Depends(ledgers)):
    try:
        payload = await read_payload(request)
        rec = await submit_feedback(payload, lg)
    except Exception:
        log.exception("error handling feedback")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )
    log.info("feedback received from %s (%s)", rec.name, rec.category)
    return {"success": True}


@router.get("/api/top-donators")
async def get_top_donators(lg: SerializedLedger = Depends(ledgers)):
    donors = await top_donors(lg)
    return {"donators": [d.to_dict() for d in donors]}


@router.get("/api/status")
async def get_status():
    return {"ok": True}


# ----------------------------
# MockPay (GATEWAY_BACKEND=mock)
# ----------------------------
mock_router = APIRouter()


def mockpay_session(psid: str, gateway: PaymentGateway) -> Dict[str, Any]:
    session = None
    if isinstance(gateway, MockPay):
        session = gateway.get_session(psid)
    if session is None:
        raise HTTPException(404, detail="payment session not found")
    return session


@mock_router.get("/mockpay/{psid}")
async def mockpay_screen(
    psid: str, gateway: PaymentGateway = Depends(payment_gateway),
):
    session = mockpay_session(psid, gateway)
    return {
        "psid": psid,
        "line_item": session["line_item"],
        "amount": f"{session['amount_total'] / 100:.2f}",
        "currency": session["currency"],
        "status": session["status"],
        "emit": f"/mockpay/{psid}/emit",
    }


@mock_router.post("/mockpay/{psid}/emit")
async def mockpay_emit(
    psid: str, request: Request,
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(payment_gateway),
):
    form = await request.form()
    kind = form.get("t")  # succeeded|canceled
    if kind not in {"succeeded", "canceled"}:
        raise HTTPException(400, detail="invalid kind")
    session = mockpay_session(psid, gateway)

    event = gateway.outcome_event(psid, kind)
    payload, headers = MockPay.encode_event(
        event, settings.stripe_webhook_secret
    )
    client_http: httpx.AsyncClient = request.app.state.http
    try:
        resp = await client_http.post(settings.mock_webhook_url,
                                      content=payload, headers=headers)
        if resp.status_code >= 400:
            log.warning("mockpay: webhook answered %d: %s",
                        resp.status_code, resp.text)
    except httpx.HTTPError as e:
        # the buyer can retry the emit
        log.warning("mockpay: webhook delivery failed: %s", e)

    url = session["success_url"] if kind == "succeeded" \
        else session["cancel_url"]
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


# ----------------------------
# App factory
# ----------------------------
def create_app(settings: Optional[Settings] = None, *,
               store: Optional[LedgerStore] = None,
               gateway: Optional[PaymentGateway] = None,
               http: Optional[httpx.AsyncClient] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Apex Store",
        default_response_class=ORJSONResponse,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = store if store is not None else build_store(settings)
    gateway = gateway if gateway is not None else build_gateway(settings)
    app.state.settings = settings
    app.state.store = store
    app.state.ledgers = SerializedLedger(store)
    app.state.gateway = gateway
    app.state.http = http

    app.include_router(router)
    if isinstance(gateway, MockPay):
        app.include_router(mock_router)

    @app.exception_handler(ApexStoreError)
    async def _apexstore_error(request: Request, exc: ApexStoreError):
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.on_event("startup")
    async def _say_hello():
        log.info("Apex Store is starting up...")
        log.info("   - Payment gateway: %s", gateway.name)
        log.info("   - Ledger backend:  %s", type(store).__module__)
        log.info("   - Webhooks:        %s", settings.webhook_mode)
        if settings.webhook_mode == "UNSIGNED":
            log.warning("webhook signatures are NOT verified; "
                        "never run like this in production")
        elif settings.webhook_mode == "disabled":
            log.warning("STRIPE_WEBHOOK_SECRET not set: every webhook "
                        "will be rejected")

    @app.on_event("startup")
    async def _http_client_start():
        if app.state.http is None:
            app.state.http = httpx.AsyncClient(timeout=5.0)

    @app.on_event("shutdown")
    async def _http_client_stop():
        client = getattr(app.state, "http", None)
        if client is not None:
            await client.aclose()
            app.state.http = None

    @app.on_event("shutdown")
    async def _redis_stop():
        r = getattr(app.state.store, "r", None)
        if r is not None:
            await r.aclose()

    # per-operation timings end up in the log at shutdown
    install_shutdown_report(app)
    return app


app = create_app()
