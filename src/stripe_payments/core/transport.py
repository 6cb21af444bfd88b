"""
Single blocking HTTP round trip against the platform.

:func:`perform_request` either returns the decoded JSON object or raises a
:class:`~stripe_payments.core.errors.PaymentsError`; it never retries.
"""

from __future__ import annotations

import json
import logging
import platform
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .._version import __version__
from .config import API_VERSION
from .errors import (
    DecodingError,
    NotFoundError,
    PaymentsError,
    PlatformError,
    TransportError,
    UnauthorizedError,
)

__all__ = ["RequestSpec", "build_headers", "perform_request"]

_STATUS_ERRORS = {
    401: UnauthorizedError,
    404: NotFoundError,
}


@dataclass(frozen=True)
class RequestSpec:
    """Everything needed to issue one request, captured when it is submitted."""

    method: str
    url: str
    credential: str
    timeout_seconds: float
    params: Sequence[Tuple[str, str]] = ()
    form: Optional[Sequence[Tuple[str, str]]] = None
    stripe_account: Optional[str] = None


def _client_user_agent() -> str:
    return json.dumps(
        {
            "lang": "python",
            "lang_version": platform.python_version(),
            "bindings_version": __version__,
            "publisher": "stripe-payments",
        }
    )


def build_headers(credential: str, *, stripe_account: Optional[str] = None) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {credential}",
        "Stripe-Version": API_VERSION,
        "User-Agent": f"stripe-payments-python/{__version__}",
        "X-Stripe-User-Agent": _client_user_agent(),
    }
    if stripe_account:
        headers["Stripe-Account"] = stripe_account
    return headers


def _decode_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise DecodingError(
            f"Failed to parse JSON from {response.url}",
            http_status=response.status_code,
            request_id=response.headers.get("Request-Id"),
        ) from exc


def _error_for_response(response: requests.Response) -> PaymentsError:
    status = response.status_code
    request_id = response.headers.get("Request-Id")
    try:
        body = response.json()
    except ValueError:
        body = {}
    error_cls = _STATUS_ERRORS.get(status, PlatformError)
    return error_cls.from_error_body(
        body,
        http_status=status,
        request_id=request_id,
        default_message=f"Platform responded with {status}: {response.reason or ''}".strip(),
    )


def perform_request(session: requests.Session, spec: RequestSpec) -> Dict[str, Any]:
    headers = build_headers(spec.credential, stripe_account=spec.stripe_account)
    data: Optional[List[Tuple[str, str]]] = None
    if spec.form is not None:
        data = list(spec.form)
        headers["Content-Type"] = "application/x-www-form-urlencoded"

    logging.info("Sending %s %s", spec.method, spec.url)
    try:
        response = session.request(
            spec.method,
            spec.url,
            params=list(spec.params) or None,
            data=data,
            headers=headers,
            timeout=spec.timeout_seconds,
        )
    except requests.Timeout as exc:
        raise TransportError(f"Request to {spec.url} timed out") from exc
    except requests.RequestException as exc:
        raise TransportError(f"Request to {spec.url} failed: {exc}") from exc

    if response.status_code >= 400:
        error = _error_for_response(response)
        logging.info(
            "%s %s failed with %s (request id %s)",
            spec.method,
            spec.url,
            response.status_code,
            error.request_id,
        )
        raise error

    payload = _decode_body(response)
    if not isinstance(payload, dict):
        raise DecodingError(
            f"Expected a JSON object from {spec.url}",
            http_status=response.status_code,
        )
    return payload
