"""Shared fixtures for the stripe-payments test suite."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pytest

from stripe_payments.core.client import APIClient
from stripe_payments.core.config import ClientConfig
from stripe_payments.core.customers import CustomerContext
from stripe_payments.core.dispatch import Dispatcher
from stripe_payments.core.models import EphemeralKey


# ---------------------------------------------------------------------------
# Constants reused across tests
# ---------------------------------------------------------------------------

TEST_API_URL = "https://api.test.local/v1"
TEST_PUBLISHABLE_KEY = "pk_test_TESTKEY123456"
TEST_CUSTOMER_ID = "cus_123"
TEST_EPHEMERAL_SECRET = "ek_test_SECRET"
WAIT = 5


def url(path: str) -> str:
    return f"{TEST_API_URL}{path}"


class Recorder:
    """Completion callback that remembers every invocation."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, Any]] = []
        self.threads: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, result: Any, error: Any) -> None:
        with self._lock:
            self.calls.append((result, error))
            self.threads.append(threading.current_thread().name)

    @property
    def result(self) -> Any:
        assert len(self.calls) == 1
        return self.calls[0][0]

    @property
    def error(self) -> Any:
        assert len(self.calls) == 1
        return self.calls[0][1]


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> ClientConfig:
    return ClientConfig(publishable_key=TEST_PUBLISHABLE_KEY, api_url=TEST_API_URL, timeout_seconds=5)


@pytest.fixture()
def client(config: ClientConfig) -> Iterator[APIClient]:
    api_client = APIClient(config)
    yield api_client
    api_client.close()


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def dispatcher() -> Iterator[Dispatcher]:
    owned = Dispatcher(max_workers=2)
    yield owned
    owned.shutdown()


@pytest.fixture()
def customer_context(dispatcher: Dispatcher) -> CustomerContext:
    return CustomerContext(api_url=TEST_API_URL, timeout_seconds=5, dispatcher=dispatcher)


@pytest.fixture()
def ephemeral_key() -> EphemeralKey:
    now = datetime.now(timezone.utc)
    return EphemeralKey(
        id="ephkey_123",
        secret=TEST_EPHEMERAL_SECRET,
        customer_id=TEST_CUSTOMER_ID,
        created=now - timedelta(minutes=1),
        expires=now + timedelta(hours=1),
        livemode=False,
    )


@pytest.fixture()
def expired_key(ephemeral_key: EphemeralKey) -> EphemeralKey:
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    return EphemeralKey(
        id=ephemeral_key.id,
        secret=ephemeral_key.secret,
        customer_id=ephemeral_key.customer_id,
        created=past - timedelta(hours=1),
        expires=past,
    )


# ---------------------------------------------------------------------------
# Mock API response payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def card_payload() -> Dict[str, Any]:
    return {
        "id": "card_123",
        "object": "card",
        "brand": "Visa",
        "last4": "4242",
        "exp_month": 12,
        "exp_year": 2030,
        "funding": "credit",
        "country": "US",
        "customer": None,
    }


@pytest.fixture()
def token_payload(card_payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": "tok_123",
        "object": "token",
        "type": "card",
        "livemode": False,
        "created": 1500000000,
        "used": False,
        "card": card_payload,
    }


@pytest.fixture()
def source_payload() -> Dict[str, Any]:
    return {
        "id": "src_123",
        "object": "source",
        "type": "three_d_secure",
        "status": "pending",
        "flow": "redirect",
        "usage": "single_use",
        "amount": 1099,
        "currency": "usd",
        "client_secret": "secret_abc",
        "livemode": False,
        "created": 1500000000,
        "metadata": {"order": "42"},
    }


@pytest.fixture()
def customer_payload(card_payload: Dict[str, Any], source_payload: Dict[str, Any]) -> Dict[str, Any]:
    attached_card = dict(card_payload, customer=TEST_CUSTOMER_ID)
    return {
        "id": TEST_CUSTOMER_ID,
        "object": "customer",
        "email": "old@example.com",
        "description": "Test customer",
        "default_source": "card_123",
        "metadata": {"tier": "gold"},
        "sources": {
            "object": "list",
            "data": [
                attached_card,
                source_payload,
                {"id": "ba_123", "object": "bank_account"},
            ],
        },
    }


@pytest.fixture()
def ephemeral_key_payload() -> Dict[str, Any]:
    return {
        "id": "ephkey_123",
        "object": "ephemeral_key",
        "associated_objects": [{"type": "customer", "id": TEST_CUSTOMER_ID}],
        "created": 1500000000,
        "expires": 1500003600,
        "livemode": False,
        "secret": TEST_EPHEMERAL_SECRET,
    }


def not_found_body(message: str = "No such source: src_missing") -> Dict[str, Any]:
    return {
        "error": {
            "type": "invalid_request_error",
            "code": "resource_missing",
            "message": message,
            "param": "id",
        }
    }


def only_error(recorder: Recorder) -> Optional[Exception]:
    assert len(recorder.calls) == 1
    result, error = recorder.calls[0]
    assert result is None
    return error
