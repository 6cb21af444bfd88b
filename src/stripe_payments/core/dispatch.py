"""
Background execution of requests with exactly-once completion delivery.

A :class:`RequestHandle` is returned for every operation. Its completion is
invoked exactly once: with the result, with the error raised while producing
it, or with :class:`RequestCancelledError` if :meth:`RequestHandle.cancel`
wins the race against the response.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Generic, Optional, TypeVar

from .errors import PaymentsError, RequestCancelledError

__all__ = ["Completion", "Dispatcher", "RequestHandle", "default_dispatcher"]

T = TypeVar("T")

Completion = Callable[[Optional[T], Optional[PaymentsError]], None]


class RequestHandle(Generic[T]):
    """Cancellable handle for one in-flight operation."""

    def __init__(
        self,
        completion: Optional[Completion],
        *,
        callback_executor: Optional[Executor] = None,
        description: str = "request",
    ) -> None:
        self._completion = completion
        self._callback_executor = callback_executor
        self._description = description
        self._lock = threading.Lock()
        self._delivered = False
        self._finished = threading.Event()
        self._result: Optional[T] = None
        self._error: Optional[PaymentsError] = None
        self._future: Optional[Future] = None

    def __repr__(self) -> str:
        state = "done" if self._finished.is_set() else "pending"
        return f"<RequestHandle {self._description} {state}>"

    def _attach(self, future: Future) -> None:
        self._future = future

    def _deliver(self, result: Optional[T], error: Optional[PaymentsError]) -> bool:
        with self._lock:
            if self._delivered:
                return False
            self._delivered = True
            self._result = result
            self._error = error

        if self._callback_executor is not None:
            try:
                self._callback_executor.submit(self._invoke)
                return True
            except RuntimeError:
                logging.warning(
                    "Callback executor rejected %s; completing on the current thread",
                    self._description,
                )
        self._invoke()
        return True

    def _invoke(self) -> None:
        try:
            if self._completion is not None:
                self._completion(self._result, self._error)
        except Exception:
            logging.exception("Completion for %s raised", self._description)
        finally:
            self._finished.set()

    def cancel(self) -> bool:
        """
        Cancel the operation.

        Returns ``True`` if the cancellation was delivered to the completion,
        ``False`` if a result or error had already been delivered.
        """
        if self._future is not None:
            self._future.cancel()
        delivered = self._deliver(
            None, RequestCancelledError(f"{self._description} was cancelled")
        )
        if delivered:
            logging.info("Cancelled %s", self._description)
        return delivered

    def cancelled(self) -> bool:
        with self._lock:
            return self._delivered and isinstance(self._error, RequestCancelledError)

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the completion has run; returns ``False`` on timeout."""
        return self._finished.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> T:
        """Block for the outcome, raising the delivered error if there was one."""
        if not self._finished.wait(timeout):
            raise TimeoutError(f"{self._description} did not complete within {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result  # type: ignore[return-value]


class Dispatcher:
    """Runs work on an executor and routes outcomes to request handles."""

    def __init__(
        self,
        executor: Optional[Executor] = None,
        *,
        callback_executor: Optional[Executor] = None,
        max_workers: int = 4,
    ) -> None:
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stripe-payments"
        )
        self.callback_executor = callback_executor

    def submit(
        self,
        work: Callable[[], T],
        completion: Optional[Completion],
        *,
        description: str = "request",
    ) -> RequestHandle[T]:
        handle: RequestHandle[T] = RequestHandle(
            completion,
            callback_executor=self.callback_executor,
            description=description,
        )

        def run() -> None:
            try:
                outcome = work()
            except PaymentsError as exc:
                if not handle._deliver(None, exc):
                    logging.debug("Discarding error for cancelled %s: %s", description, exc)
                return
            except Exception as exc:
                # Anything unexpected still has to reach the caller exactly once.
                error = PaymentsError(f"{description} failed unexpectedly: {exc}")
                error.__cause__ = exc
                logging.exception("Unexpected failure in %s", description)
                handle._deliver(None, error)
                return
            if not handle._deliver(outcome, None):
                logging.debug("Discarding response for cancelled %s", description)

        try:
            future = self.executor.submit(run)
        except RuntimeError as exc:
            error = PaymentsError(f"Cannot start {description}: {exc}")
            error.__cause__ = exc
            handle._deliver(None, error)
            return handle
        handle._attach(future)
        return handle

    def fail(
        self,
        error: PaymentsError,
        completion: Optional[Completion],
        *,
        description: str = "request",
    ) -> RequestHandle[Any]:
        """Complete immediately with ``error`` without touching the network."""
        handle: RequestHandle[Any] = RequestHandle(
            completion,
            callback_executor=self.callback_executor,
            description=description,
        )
        logging.info("Rejected %s before sending: %s", description, error.message)
        handle._deliver(None, error)
        return handle

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=wait)


_default_dispatcher: Optional[Dispatcher] = None
_default_lock = threading.Lock()


def default_dispatcher() -> Dispatcher:
    """Shared dispatcher used by the class-level customer operations."""
    global _default_dispatcher
    with _default_lock:
        if _default_dispatcher is None:
            _default_dispatcher = Dispatcher()
        return _default_dispatcher
