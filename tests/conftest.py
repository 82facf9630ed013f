import pytest
from fastapi.testclient import TestClient

from apexstore.config import Settings
from apexstore.model.ledgerstore import MemoryLedgerStore
from apexstore.server import create_app

from factories import WEBHOOK_SECRET, FakeGateway


@pytest.fixture
def settings():
    return Settings(
        stripe_webhook_secret=WEBHOOK_SECRET,
        gateway_timeout=1.0,
        ledger_backend="memory",
        log_level="DEBUG",
    )


@pytest.fixture
def store():
    return MemoryLedgerStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(settings, store, gateway):
    return create_app(settings, store=store, gateway=gateway)


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as c:
        yield c
