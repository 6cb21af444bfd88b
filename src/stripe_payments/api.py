"""
Public, high-level helpers for building clients and making one-off calls.
"""

from __future__ import annotations

from concurrent.futures import Executor
from typing import Any, Mapping, Optional

import requests

from .core.client import APIClient
from .core.config import ClientConfig, ConfigError, load_client_config
from .core.models import Source, Token

__all__ = [
    "ConfigError",
    "create_api_client",
    "create_token",
    "retrieve_source",
]


def create_api_client(
    *,
    config: Optional[ClientConfig] = None,
    session: Optional[requests.Session] = None,
    executor: Optional[Executor] = None,
    callback_executor: Optional[Executor] = None,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    publishable_key: Optional[str] = None,
    api_url: Optional[str] = None,
    timeout_seconds: Optional[float | str] = None,
    stripe_account: Optional[str] = None,
    max_workers: Optional[int | str] = None,
) -> APIClient:
    """
    Construct an :class:`APIClient`.

    Callers can either supply a ready-made :class:`ClientConfig` or let the
    helper assemble one from keyword arguments and environment data.
    """
    if config is not None:
        extras = (
            overrides,
            base,
            publishable_key,
            api_url,
            timeout_seconds,
            stripe_account,
            max_workers,
        )
        if any(item is not None and item != {} for item in extras):
            raise ValueError(
                "Provide either a pre-built ClientConfig or individual parameters, not both."
            )
        cfg = config
    else:
        cfg = load_client_config(
            env_file=env_file,
            overrides=overrides,
            base=base,
            publishable_key=publishable_key,
            api_url=api_url,
            timeout_seconds=timeout_seconds,
            stripe_account=stripe_account,
            max_workers=max_workers,
        )
    return APIClient(
        cfg,
        session=session,
        executor=executor,
        callback_executor=callback_executor,
    )


def create_token(
    parameters: Mapping[str, Any],
    *,
    client: Optional[APIClient] = None,
    timeout: Optional[float] = None,
    **client_kwargs: Any,
) -> Token:
    """
    Blocking convenience wrapper around :meth:`APIClient.create_token`.

    Raises the delivered :class:`PaymentsError` on failure.
    """
    if client is not None:
        return client.create_token(parameters).result(timeout)
    with create_api_client(**client_kwargs) as owned:
        return owned.create_token(parameters).result(timeout)


def retrieve_source(
    source_id: str,
    client_secret: str,
    *,
    client: Optional[APIClient] = None,
    timeout: Optional[float] = None,
    **client_kwargs: Any,
) -> Source:
    """Blocking convenience wrapper around :meth:`APIClient.retrieve_source`."""
    if client is not None:
        return client.retrieve_source(source_id, client_secret).result(timeout)
    with create_api_client(**client_kwargs) as owned:
        return owned.retrieve_source(source_id, client_secret).result(timeout)
