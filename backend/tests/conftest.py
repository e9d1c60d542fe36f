import hashlib
import hmac
import json
import logging
import os
from datetime import UTC, datetime
from typing import Iterator

import pytest

# Set test environment variables
TEST_TOKEN = "5675:test_token"
os.environ.update(
    {
        "CRYPTOPAY_TOKEN": TEST_TOKEN,
        "WEBHOOK_PATH": "/cryptopay/webhook",
        "LOG_LEVEL": "DEBUG",
    }
)

from fastapi.testclient import TestClient

# Import app modules after setting environment variables
from cryptopay.core.config import Settings, get_settings
from cryptopay.main import create_app
from cryptopay.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

TOKEN_HASH = hashlib.sha256(TEST_TOKEN.encode()).digest()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def signing_key() -> bytes:
    return TOKEN_HASH


@pytest.fixture
def sign():
    def _sign(body: bytes, key: bytes = TOKEN_HASH) -> str:
        return hmac.new(key, body, hashlib.sha256).hexdigest()

    return _sign


@pytest.fixture
def make_body():
    def _make_body(
        update_id: int = 0, update_type: str = "invoice_paid", **invoice
    ) -> bytes:
        now = datetime.now(UTC).isoformat()
        payload = {
            "invoice_id": 42,
            "status": "paid",
            "hash": "IVexcHash",
            "asset": "USDT",
            "amount": "1",
            "pay_url": "https://t.me/CryptoBot?start=IVexcHash",
            "created_at": now,
            "allow_comments": False,
            "allow_anonymous": True,
            "paid_at": now,
            "paid_anonymously": True,
        }
        payload.update(invoice)
        return json.dumps(
            {
                "update_id": update_id,
                "update_type": update_type,
                "request_date": now,
                "payload": payload,
            }
        ).encode()

    return _make_body


@pytest.fixture
def webhook_errors() -> list:
    return []


@pytest.fixture
def handler_errors() -> list:
    return []


@pytest.fixture
def dispatcher(settings, webhook_errors, handler_errors) -> Iterator[Dispatcher]:
    d = Dispatcher.from_settings(
        settings,
        on_webhook_error=webhook_errors.append,
        on_handler_error=lambda update, err: handler_errors.append((update, err)),
    )
    yield d
    d.close()


@pytest.fixture
def client(settings, dispatcher) -> Iterator[TestClient]:
    app = create_app(settings, dispatcher)
    with TestClient(app) as test_client:
        logger.info("Test client created")
        yield test_client
