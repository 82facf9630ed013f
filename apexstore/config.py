# ----------------------------
# Config & Constants
# ----------------------------
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .helpers import parse_bool
from .issuer import DEFAULT_CANCEL_PATH, DEFAULT_SUCCESS_PATH

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: Optional[str] = None
    # set -> webhooks must carry a valid signature
    stripe_webhook_secret: Optional[str] = None
    # explicit opt-in for unsigned webhooks when no secret is set (dev only)
    allow_unsigned_webhooks: bool = False
    gateway_backend: str = "stripe"  # stripe | mock
    gateway_timeout: float = 10.0
    ledger_backend: str = "file"  # file | redis | memory
    ledger_path: str = "db.json"
    redis_url: str = "redis://127.0.0.1:6379"
    ledger_redis_key: str = "apexstore:ledger"
    mock_webhook_url: str = "http://localhost:8000/webhook"
    success_path: str = DEFAULT_SUCCESS_PATH
    cancel_path: str = DEFAULT_CANCEL_PATH
    log_level: str = "INFO"

    @property
    def webhook_mode(self) -> str:
        if self.stripe_webhook_secret:
            return "signed"
        return "UNSIGNED" if self.allow_unsigned_webhooks else "disabled"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> Settings:
        if dotenv:
            load_dotenv()
        env = os.environ.get
        return cls(
            stripe_secret_key=env("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=env("STRIPE_WEBHOOK_SECRET") or None,
            allow_unsigned_webhooks=parse_bool(env("WEBHOOK_ALLOW_UNSIGNED")),
            gateway_backend=env("GATEWAY_BACKEND", "stripe").lower(),
            gateway_timeout=float(env("GATEWAY_TIMEOUT_SECONDS", "10")),
            ledger_backend=env("LEDGER_BACKEND", "file").lower(),
            ledger_path=env("LEDGER_PATH", "db.json"),
            redis_url=env("REDIS_URL", "redis://127.0.0.1:6379"),
            ledger_redis_key=env("LEDGER_REDIS_KEY", "apexstore:ledger"),
            mock_webhook_url=env("MOCK_WEBHOOK_URL",
                                 "http://localhost:8000/webhook"),
            success_path=env("SUCCESS_PATH", DEFAULT_SUCCESS_PATH),
            cancel_path=env("CANCEL_PATH", DEFAULT_CANCEL_PATH),
            log_level=env("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("apexstore").setLevel(level)
