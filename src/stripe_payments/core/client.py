"""
HTTP client for the platform's client-side endpoints.
"""

from __future__ import annotations

from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Mapping, Optional
from urllib.parse import quote

import requests

from . import customers
from .config import API_VERSION, DEFAULT_API_URL, ClientConfig
from .dispatch import Completion, Dispatcher, RequestHandle, default_dispatcher
from .errors import InvalidInputError, PaymentsError, UnauthorizedError
from .models import EphemeralKey, Source, Token, decode_payload
from .payloads import validate_parameters
from .transport import RequestSpec, perform_request

__all__ = ["APIClient"]


class APIClient:
    """
    Client authenticated with a publishable key.

    Every operation returns a :class:`RequestHandle` right away and calls
    ``completion(result, error)`` exactly once from a worker thread, or from
    ``callback_executor`` when one is given.

    ``api_url`` and ``url_session`` are read-only. Use :meth:`with_base_url`
    and :meth:`with_session` to get a reconfigured client; requests already
    in flight keep the settings they were submitted with.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        session: Optional[requests.Session] = None,
        executor: Optional[Executor] = None,
        callback_executor: Optional[Executor] = None,
    ) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._dispatcher = Dispatcher(
            executor,
            callback_executor=callback_executor,
            max_workers=config.max_workers,
        )

    @classmethod
    def from_publishable_key(
        cls,
        publishable_key: str,
        base_url: str = DEFAULT_API_URL,
        **kwargs: Any,
    ) -> "APIClient":
        return cls(ClientConfig(publishable_key=publishable_key, api_url=base_url), **kwargs)

    @staticmethod
    def api_version() -> str:
        """API version sent as ``Stripe-Version`` on every request."""
        return API_VERSION

    @property
    def publishable_key(self) -> str:
        return self.config.publishable_key

    @property
    def api_url(self) -> str:
        return self.config.api_url

    @property
    def url_session(self) -> requests.Session:
        return self._session

    def _derive(self, config: ClientConfig, session: requests.Session) -> "APIClient":
        clone = type(self).__new__(type(self))
        clone.config = config
        clone._session = session
        # Share the worker pool without taking ownership of it.
        clone._dispatcher = Dispatcher(
            self._dispatcher.executor,
            callback_executor=self._dispatcher.callback_executor,
        )
        return clone

    def with_base_url(self, api_url: str) -> "APIClient":
        return self._derive(self.config.with_base_url(api_url), self._session)

    def with_session(self, session: requests.Session) -> "APIClient":
        return self._derive(self.config, session)

    def close(self) -> None:
        self._dispatcher.shutdown()

    def __enter__(self) -> "APIClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _spec(self, method: str, path: str, **kwargs: Any) -> RequestSpec:
        return RequestSpec(
            method=method,
            url=f"{self.config.api_url}/{path}",
            credential=self.config.publishable_key,
            timeout_seconds=self.config.timeout_seconds,
            stripe_account=self.config.stripe_account,
            **kwargs,
        )

    def _submit(self, spec: RequestSpec, decode, completion, description: str) -> RequestHandle:
        session = self._session

        def work():
            return decode_payload(decode, perform_request(session, spec))

        return self._dispatcher.submit(work, completion, description=description)

    def create_token(
        self,
        parameters: Mapping[str, Any],
        completion: Optional[Completion] = None,
    ) -> RequestHandle:
        """
        Create a token from card or bank account ``parameters``.

        Malformed parameters complete with :class:`InvalidInputError` without
        sending anything.
        """
        try:
            form = validate_parameters(parameters)
        except PaymentsError as exc:
            return self._dispatcher.fail(exc, completion, description="create token")
        return self._submit(
            self._spec("POST", "tokens", form=form),
            Token.from_response,
            completion,
            "create token",
        )

    def retrieve_source(
        self,
        source_id: str,
        client_secret: str,
        completion: Optional[Completion] = None,
    ) -> RequestHandle:
        """
        Fetch a source using its client secret.

        The handle's :meth:`~RequestHandle.cancel` completes the call with
        :class:`RequestCancelledError` unless an outcome was already
        delivered.
        """
        description = f"retrieve source {source_id}"
        if not isinstance(source_id, str) or not source_id.strip():
            return self._dispatcher.fail(
                InvalidInputError("A source id is required", param="id"),
                completion,
                description=description,
            )
        if not isinstance(client_secret, str) or not client_secret:
            return self._dispatcher.fail(
                UnauthorizedError("A client secret is required to retrieve a source"),
                completion,
                description=description,
            )
        return self._submit(
            self._spec(
                "GET",
                f"sources/{quote(source_id.strip(), safe='')}",
                params=[("client_secret", client_secret)],
            ),
            Source.from_response,
            completion,
            description,
        )

    # Customer operations are scoped by an ephemeral key rather than the
    # publishable key, so they do not use any instance state.

    @staticmethod
    def _customer_context(
        api_url: str,
        session: Optional[requests.Session],
        timeout_seconds: float,
        executor: Optional[Executor],
        callback_executor: Optional[Executor],
    ) -> customers.CustomerContext:
        dispatcher = None
        if executor is not None or callback_executor is not None:
            dispatcher = Dispatcher(
                executor or default_dispatcher().executor,
                callback_executor=callback_executor,
            )
        return customers.CustomerContext(
            api_url=api_url,
            session=session,
            timeout_seconds=timeout_seconds,
            dispatcher=dispatcher,
        )

    @classmethod
    def retrieve_customer(
        cls,
        key: Optional[EphemeralKey],
        completion: Optional[Completion] = None,
        *,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 30.0,
        executor: Optional[Executor] = None,
        callback_executor: Optional[Executor] = None,
        now: Optional[datetime] = None,
    ) -> RequestHandle:
        context = cls._customer_context(api_url, session, timeout_seconds, executor, callback_executor)
        return customers.retrieve_customer(key, completion, context=context, now=now)

    @classmethod
    def update_customer(
        cls,
        parameters: Mapping[str, Any],
        key: Optional[EphemeralKey],
        completion: Optional[Completion] = None,
        *,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 30.0,
        executor: Optional[Executor] = None,
        callback_executor: Optional[Executor] = None,
        now: Optional[datetime] = None,
    ) -> RequestHandle:
        context = cls._customer_context(api_url, session, timeout_seconds, executor, callback_executor)
        return customers.update_customer(parameters, key, completion, context=context, now=now)

    @classmethod
    def add_source(
        cls,
        source_id: str,
        key: Optional[EphemeralKey],
        completion: Optional[Completion] = None,
        *,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 30.0,
        executor: Optional[Executor] = None,
        callback_executor: Optional[Executor] = None,
        now: Optional[datetime] = None,
    ) -> RequestHandle:
        context = cls._customer_context(api_url, session, timeout_seconds, executor, callback_executor)
        return customers.add_source(source_id, key, completion, context=context, now=now)

    @classmethod
    def detach_source(
        cls,
        source_id: str,
        key: Optional[EphemeralKey],
        completion: Optional[Completion] = None,
        *,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 30.0,
        executor: Optional[Executor] = None,
        callback_executor: Optional[Executor] = None,
        now: Optional[datetime] = None,
    ) -> RequestHandle:
        context = cls._customer_context(api_url, session, timeout_seconds, executor, callback_executor)
        return customers.detach_source(source_id, key, completion, context=context, now=now)
