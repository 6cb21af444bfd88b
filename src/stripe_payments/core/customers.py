"""
Customer operations authorised by an ephemeral key.

These are free functions: they hold no client state and take the key on
every call. The key is checked before anything is sent, so a missing or
expired key completes with :class:`UnauthorizedError` without a request.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

import requests

from .config import DEFAULT_API_URL
from .dispatch import Completion, Dispatcher, RequestHandle, default_dispatcher
from .errors import InvalidInputError, PaymentsError, UnauthorizedError
from .models import Customer, EphemeralKey, decode_payload, parse_source_object
from .payloads import validate_parameters
from .transport import RequestSpec, perform_request

__all__ = [
    "CustomerContext",
    "add_source",
    "detach_source",
    "retrieve_customer",
    "shared_session",
    "update_customer",
]

_shared_session: Optional[requests.Session] = None
_session_lock = threading.Lock()


def shared_session() -> requests.Session:
    """Connection pool reused by customer calls made without an explicit session."""
    global _shared_session
    with _session_lock:
        if _shared_session is None:
            _shared_session = requests.Session()
        return _shared_session


class CustomerContext:
    """
    Where and how customer requests are sent.

    Only endpoint and execution settings live here; the credential always
    comes from the ephemeral key passed to each call.
    """

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 30.0,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.session = session or shared_session()
        self.timeout_seconds = timeout_seconds
        self.dispatcher = dispatcher or default_dispatcher()


def _checked_key(key: Optional[EphemeralKey], now: Optional[datetime]) -> EphemeralKey:
    """Return ``key`` if it can authorise a customer request, else raise."""
    if key is None:
        raise UnauthorizedError("An ephemeral key is required for customer operations")
    if not isinstance(key.secret, str) or not key.secret:
        raise UnauthorizedError("The ephemeral key has no secret")
    if not isinstance(key.customer_id, str) or not key.customer_id:
        raise UnauthorizedError("The ephemeral key is not associated with a customer")
    if key.is_expired(now):
        raise UnauthorizedError(f"Ephemeral key {key.id} has expired")
    return key


def _customer_path(key: EphemeralKey, *parts: str) -> str:
    segments = ["customers", key.customer_id] + list(parts)
    return "/".join(quote(segment, safe="") for segment in segments)


def _run(
    context: CustomerContext,
    key: Optional[EphemeralKey],
    completion: Optional[Completion],
    description: str,
    build: Callable[[EphemeralKey], RequestSpec],
    decode: Callable[[Any], Any],
    now: Optional[datetime],
) -> RequestHandle:
    try:
        spec = build(_checked_key(key, now))
    except PaymentsError as exc:
        return context.dispatcher.fail(exc, completion, description=description)
    except Exception as exc:
        error = PaymentsError(f"Cannot prepare {description}: {exc}")
        error.__cause__ = exc
        logging.exception("Unexpected failure preparing %s", description)
        return context.dispatcher.fail(error, completion, description=description)

    session = context.session

    def work() -> Any:
        return decode_payload(decode, perform_request(session, spec))

    return context.dispatcher.submit(work, completion, description=description)


def _spec(
    context: CustomerContext,
    key: EphemeralKey,
    method: str,
    path: str,
    form=None,
) -> RequestSpec:
    return RequestSpec(
        method=method,
        url=f"{context.api_url}/{path}",
        credential=key.secret,
        timeout_seconds=context.timeout_seconds,
        form=form,
    )


def _require_source_id(source_id: Any) -> str:
    if not isinstance(source_id, str) or not source_id.strip():
        raise InvalidInputError("A source id is required", param="source")
    return source_id.strip()


def retrieve_customer(
    key: Optional[EphemeralKey],
    completion: Optional[Completion] = None,
    *,
    context: Optional[CustomerContext] = None,
    now: Optional[datetime] = None,
) -> RequestHandle:
    """Fetch the customer the ephemeral key belongs to."""
    ctx = context or CustomerContext()
    return _run(
        ctx,
        key,
        completion,
        "retrieve customer",
        lambda k: _spec(ctx, k, "GET", _customer_path(k)),
        Customer.from_response,
        now,
    )


def update_customer(
    parameters: Mapping[str, Any],
    key: Optional[EphemeralKey],
    completion: Optional[Completion] = None,
    *,
    context: Optional[CustomerContext] = None,
    now: Optional[datetime] = None,
) -> RequestHandle:
    """
    Update the customer with ``parameters``.

    The platform merges the update: fields not mentioned keep their values.
    """
    ctx = context or CustomerContext()
    return _run(
        ctx,
        key,
        completion,
        "update customer",
        lambda k: _spec(ctx, k, "POST", _customer_path(k), form=validate_parameters(parameters)),
        Customer.from_response,
        now,
    )


def add_source(
    source_id: str,
    key: Optional[EphemeralKey],
    completion: Optional[Completion] = None,
    *,
    context: Optional[CustomerContext] = None,
    now: Optional[datetime] = None,
) -> RequestHandle:
    """
    Attach an existing source or token to the customer.

    Repeating the call is not deduplicated here; the platform decides whether
    a second attach succeeds or fails.
    """
    ctx = context or CustomerContext()
    return _run(
        ctx,
        key,
        completion,
        "add customer source",
        lambda k: _spec(
            ctx,
            k,
            "POST",
            _customer_path(k, "sources"),
            form=[("source", _require_source_id(source_id))],
        ),
        parse_source_object,
        now,
    )


def detach_source(
    source_id: str,
    key: Optional[EphemeralKey],
    completion: Optional[Completion] = None,
    *,
    context: Optional[CustomerContext] = None,
    now: Optional[datetime] = None,
) -> RequestHandle:
    """
    Detach a source from the customer.

    Detaching a source that is not attached completes with
    :class:`NotFoundError`.
    """
    ctx = context or CustomerContext()
    return _run(
        ctx,
        key,
        completion,
        "detach customer source",
        lambda k: _spec(
            ctx,
            k,
            "DELETE",
            _customer_path(k, "sources", _require_source_id(source_id)),
        ),
        parse_source_object,
        now,
    )
