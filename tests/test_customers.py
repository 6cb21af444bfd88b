"""Tests for the ephemeral-key customer operations."""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator
from urllib.parse import parse_qsl

import pytest
import requests
import responses

from stripe_payments.core import customers
from stripe_payments.core.client import APIClient
from stripe_payments.core.customers import CustomerContext
from stripe_payments.core.errors import (
    DecodingError,
    InvalidInputError,
    NotFoundError,
    PaymentsError,
    PlatformError,
    UnauthorizedError,
)
from stripe_payments.core.models import Card, Customer, EphemeralKey, Source

from .conftest import (
    TEST_API_URL,
    TEST_CUSTOMER_ID,
    TEST_EPHEMERAL_SECRET,
    WAIT,
    Recorder,
    not_found_body,
    only_error,
    url,
)

CUSTOMER_URL = url(f"/customers/{TEST_CUSTOMER_ID}")


@pytest.fixture()
def worker_pool() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


# ===================================================================
# key validation
# ===================================================================


class TestKeyValidation:

    @responses.activate
    def test_expired_key_makes_no_request(
        self,
        expired_key: EphemeralKey,
        recorder: Recorder,
        worker_pool: ThreadPoolExecutor,
    ) -> None:
        handle = APIClient.retrieve_customer(
            expired_key, recorder, api_url=TEST_API_URL, executor=worker_pool
        )
        assert handle.wait(WAIT)
        error = only_error(recorder)
        assert isinstance(error, UnauthorizedError)
        assert "expired" in error.message
        assert len(responses.calls) == 0

    @responses.activate
    def test_missing_key(self, recorder: Recorder, customer_context: CustomerContext) -> None:
        customers.retrieve_customer(None, recorder, context=customer_context).wait(WAIT)
        assert isinstance(only_error(recorder), UnauthorizedError)
        assert len(responses.calls) == 0

    @pytest.mark.parametrize(
        "secret, customer_id",
        [("", TEST_CUSTOMER_ID), (TEST_EPHEMERAL_SECRET, None), (TEST_EPHEMERAL_SECRET, 123)],
    )
    @responses.activate
    def test_incomplete_key(
        self,
        recorder: Recorder,
        customer_context: CustomerContext,
        secret: str,
        customer_id: Any,
    ) -> None:
        key = EphemeralKey(id="ek_1", secret=secret, customer_id=customer_id, created=None, expires=None)
        customers.add_source("src_1", key, recorder, context=customer_context).wait(WAIT)
        assert isinstance(only_error(recorder), UnauthorizedError)
        assert len(responses.calls) == 0

    @responses.activate
    def test_expiry_checked_against_supplied_clock(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
    ) -> None:
        later = datetime.now(timezone.utc) + timedelta(days=1)
        customers.detach_source(
            "src_1", ephemeral_key, recorder, context=customer_context, now=later
        ).wait(WAIT)
        assert isinstance(only_error(recorder), UnauthorizedError)
        assert len(responses.calls) == 0

    @responses.activate
    def test_naive_clock_is_treated_as_utc(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
    ) -> None:
        customers.retrieve_customer(
            ephemeral_key, recorder, context=customer_context, now=datetime(2100, 1, 1)
        ).wait(WAIT)
        error = only_error(recorder)
        assert isinstance(error, UnauthorizedError)
        assert "expired" in error.message
        assert len(responses.calls) == 0

    @responses.activate
    def test_unexpected_preparation_failure_completes_once(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_spec(*args: Any, **kwargs: Any) -> Any:
            raise RuntimeError("boom")

        monkeypatch.setattr(customers, "_spec", broken_spec)
        handle = customers.retrieve_customer(ephemeral_key, recorder, context=customer_context)
        assert handle.wait(WAIT)
        error = only_error(recorder)
        assert type(error) is PaymentsError
        assert isinstance(error.__cause__, RuntimeError)
        assert len(responses.calls) == 0


# ===================================================================
# customer context
# ===================================================================


class TestCustomerContext:

    def test_default_session_is_shared(self) -> None:
        first = CustomerContext()
        second = CustomerContext()
        assert first.session is second.session
        assert first.session is customers.shared_session()

    def test_explicit_session_is_kept(self) -> None:
        session = requests.Session()
        assert CustomerContext(session=session).session is session


# ===================================================================
# retrieve_customer
# ===================================================================


class TestRetrieveCustomer:

    @responses.activate
    def test_success(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_payload: Dict[str, Any],
        worker_pool: ThreadPoolExecutor,
    ) -> None:
        responses.add(responses.GET, CUSTOMER_URL, json=customer_payload)
        handle = APIClient.retrieve_customer(
            ephemeral_key, recorder, api_url=TEST_API_URL, executor=worker_pool
        )
        assert handle.wait(WAIT)
        customer, error = recorder.calls[0]
        assert error is None
        assert isinstance(customer, Customer)
        assert customer.id == TEST_CUSTOMER_ID
        assert len(customer.sources) == 2

        headers = responses.calls[0].request.headers
        assert headers["Authorization"] == f"Bearer {TEST_EPHEMERAL_SECRET}"
        assert headers["Stripe-Version"] == APIClient.api_version()

    @responses.activate
    def test_key_rejected_by_platform(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
    ) -> None:
        responses.add(
            responses.GET,
            CUSTOMER_URL,
            json={"error": {"type": "invalid_request_error", "message": "Invalid API Key provided: ek_test_***"}},
            status=401,
        )
        customers.retrieve_customer(ephemeral_key, recorder, context=customer_context).wait(WAIT)
        assert isinstance(only_error(recorder), UnauthorizedError)

    @pytest.mark.parametrize(
        "overrides",
        [{"sources": {"data": 5}}, {"sources": ["src_1"]}, {"metadata": "plain"}],
    )
    @responses.activate
    def test_malformed_customer_is_decoding_error(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
        customer_payload: Dict[str, Any],
        overrides: Dict[str, Any],
    ) -> None:
        responses.add(responses.GET, CUSTOMER_URL, json=dict(customer_payload, **overrides))
        customers.retrieve_customer(ephemeral_key, recorder, context=customer_context).wait(WAIT)
        assert isinstance(only_error(recorder), DecodingError)

    @responses.activate
    def test_uses_shared_dispatcher_by_default(
        self,
        ephemeral_key: EphemeralKey,
        customer_payload: Dict[str, Any],
    ) -> None:
        responses.add(responses.GET, "https://api.stripe.com/v1/customers/cus_123", json=customer_payload)
        customer = APIClient.retrieve_customer(ephemeral_key).result(WAIT)
        assert customer.email == "old@example.com"


# ===================================================================
# update_customer
# ===================================================================


class TestUpdateCustomer:

    @responses.activate
    def test_merges_only_given_fields(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_payload: Dict[str, Any],
        worker_pool: ThreadPoolExecutor,
    ) -> None:
        state = dict(customer_payload)

        def merge(request: Any) -> Any:
            state.update(dict(parse_qsl(request.body)))
            return 200, {}, json.dumps(state)

        responses.add_callback(responses.POST, CUSTOMER_URL, callback=merge)

        handle = APIClient.update_customer(
            {"email": "a@b.com"},
            ephemeral_key,
            recorder,
            api_url=TEST_API_URL,
            executor=worker_pool,
        )
        assert handle.wait(WAIT)
        updated, error = recorder.calls[0]
        assert error is None
        assert updated.email == "a@b.com"
        assert dict(parse_qsl(responses.calls[0].request.body)) == {"email": "a@b.com"}

        previous = Customer.from_response(customer_payload)
        assert updated.description == previous.description
        assert updated.default_source == previous.default_source
        assert updated.metadata == previous.metadata
        assert [item.id for item in updated.sources] == [item.id for item in previous.sources]

    @responses.activate
    def test_nested_parameters(
        self,
        ephemeral_key: EphemeralKey,
        customer_payload: Dict[str, Any],
        customer_context: CustomerContext,
    ) -> None:
        responses.add(responses.POST, CUSTOMER_URL, json=customer_payload)
        customers.update_customer(
            {"shipping": {"name": "Jenny", "address": {"line1": "1 Main St"}}},
            ephemeral_key,
            context=customer_context,
        ).result(WAIT)
        assert parse_qsl(responses.calls[0].request.body) == [
            ("shipping[name]", "Jenny"),
            ("shipping[address][line1]", "1 Main St"),
        ]

    @responses.activate
    def test_invalid_parameters(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
    ) -> None:
        customers.update_customer({}, ephemeral_key, recorder, context=customer_context).wait(WAIT)
        assert isinstance(only_error(recorder), InvalidInputError)
        assert len(responses.calls) == 0


# ===================================================================
# add_source / detach_source
# ===================================================================


class TestAddSource:

    @responses.activate
    def test_attaches_card(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        card_payload: Dict[str, Any],
        worker_pool: ThreadPoolExecutor,
    ) -> None:
        responses.add(
            responses.POST,
            f"{CUSTOMER_URL}/sources",
            json=dict(card_payload, customer=TEST_CUSTOMER_ID),
        )
        handle = APIClient.add_source(
            "tok_123", ephemeral_key, recorder, api_url=TEST_API_URL, executor=worker_pool
        )
        assert handle.wait(WAIT)
        card, error = recorder.calls[0]
        assert error is None
        assert isinstance(card, Card)
        assert card.customer == TEST_CUSTOMER_ID
        assert parse_qsl(responses.calls[0].request.body) == [("source", "tok_123")]

    @responses.activate
    def test_attaches_source(
        self,
        ephemeral_key: EphemeralKey,
        source_payload: Dict[str, Any],
        customer_context: CustomerContext,
    ) -> None:
        responses.add(responses.POST, f"{CUSTOMER_URL}/sources", json=source_payload)
        attached = customers.add_source("src_123", ephemeral_key, context=customer_context).result(WAIT)
        assert isinstance(attached, Source)

    @responses.activate
    def test_duplicate_attach_surfaces_platform_answer(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
    ) -> None:
        responses.add(
            responses.POST,
            f"{CUSTOMER_URL}/sources",
            json={"error": {"type": "invalid_request_error", "message": "Source already attached"}},
            status=400,
        )
        customers.add_source("src_123", ephemeral_key, recorder, context=customer_context).wait(WAIT)
        error = only_error(recorder)
        assert isinstance(error, PlatformError)
        assert error.http_status == 400
        assert len(responses.calls) == 1

    @responses.activate
    def test_blank_source_id(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        customer_context: CustomerContext,
    ) -> None:
        customers.add_source(" ", ephemeral_key, recorder, context=customer_context).wait(WAIT)
        assert isinstance(only_error(recorder), InvalidInputError)
        assert len(responses.calls) == 0


class TestDetachSource:

    @responses.activate
    def test_detaches(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        source_payload: Dict[str, Any],
        worker_pool: ThreadPoolExecutor,
    ) -> None:
        responses.add(
            responses.DELETE,
            f"{CUSTOMER_URL}/sources/src_123",
            json=dict(source_payload, status="consumed"),
        )
        handle = APIClient.detach_source(
            "src_123", ephemeral_key, recorder, api_url=TEST_API_URL, executor=worker_pool
        )
        assert handle.wait(WAIT)
        detached, error = recorder.calls[0]
        assert error is None
        assert detached.status == "consumed"

    @responses.activate
    def test_unattached_source_is_not_found(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        worker_pool: ThreadPoolExecutor,
    ) -> None:
        responses.add(
            responses.DELETE,
            f"{CUSTOMER_URL}/sources/src_missing",
            json=not_found_body("No such source: src_missing"),
            status=404,
        )
        handle = APIClient.detach_source(
            "src_missing", ephemeral_key, recorder, api_url=TEST_API_URL, executor=worker_pool
        )
        assert handle.wait(WAIT)
        error = only_error(recorder)
        assert isinstance(error, NotFoundError)
        assert error.code == "resource_missing"
        assert error.message == "No such source: src_missing"

    @responses.activate
    def test_callback_executor(
        self,
        ephemeral_key: EphemeralKey,
        recorder: Recorder,
        card_payload: Dict[str, Any],
    ) -> None:
        responses.add(responses.DELETE, f"{CUSTOMER_URL}/sources/card_123", json=card_payload)
        callbacks = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ui")
        try:
            handle = APIClient.detach_source(
                "card_123",
                ephemeral_key,
                recorder,
                api_url=TEST_API_URL,
                callback_executor=callbacks,
            )
            assert handle.wait(WAIT)
        finally:
            callbacks.shutdown(wait=True)
        assert recorder.threads[0].startswith("ui")
