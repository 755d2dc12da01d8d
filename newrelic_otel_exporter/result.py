"""Completion signals returned by non-blocking export and send operations.

A :class:`CompletionSignal` is a :class:`concurrent.futures.Future` that
resolves exactly once, either to :attr:`SpanExportResult.SUCCESS` or to an
exception describing the failure. Signals for several batches are combined
with :meth:`CompletionSignal.all_of`, which fails as soon as one of its inputs
fails and succeeds once every input has succeeded.
"""

from __future__ import annotations

import enum
import threading
from concurrent import futures
from typing import Callable, Iterable

from opentelemetry.sdk.trace.export import SpanExportResult

from .errors import NewRelicExporterError


class SignalState(enum.Enum):
    """Lifecycle of a :class:`CompletionSignal`."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CompletionSignal(futures.Future):
    """Resolve-once future describing the outcome of an export or a send.

    Unlike a bare future, resolving an already resolved signal is not an
    error: :meth:`succeed` and :meth:`fail` return ``False`` and leave the
    first outcome in place. Cancellation is not supported.
    """

    def __init__(self) -> None:
        super().__init__()
        self._resolve_lock = threading.RLock()

    @classmethod
    def succeeded(cls) -> CompletionSignal:
        signal = cls()
        signal.succeed()
        return signal

    @classmethod
    def failed(cls, error: BaseException | None = None) -> CompletionSignal:
        signal = cls()
        signal.fail(error)
        return signal

    @classmethod
    def all_of(cls, signals: Iterable[futures.Future]) -> CompletionSignal:
        """Aggregate ``signals`` into one signal.

        The aggregate fails with the error of the first input observed to
        fail, and succeeds once all inputs have succeeded. An empty input
        succeeds immediately. Inputs may resolve in any order and on any
        thread.
        """
        pending = list(signals)
        aggregate = cls()
        if not pending:
            aggregate.succeed()
            return aggregate

        remaining = len(pending)
        counter_lock = threading.Lock()

        def on_done(sub: futures.Future) -> None:
            nonlocal remaining
            error = _failure_of(sub)
            if error is not None:
                aggregate.fail(error)
                return
            with counter_lock:
                remaining -= 1
                finished = remaining == 0
            if finished:
                aggregate.succeed()

        for sub in pending:
            sub.add_done_callback(on_done)
        return aggregate

    # -- resolution --------------------------------------------------------

    def succeed(self) -> bool:
        """Resolve to success. Returns ``False`` if already resolved."""
        with self._resolve_lock:
            if self.done():
                return False
            self.set_result(SpanExportResult.SUCCESS)
            return True

    def fail(self, error: BaseException | None = None) -> bool:
        """Resolve to failure. Returns ``False`` if already resolved."""
        if error is None:
            error = NewRelicExporterError("export failed")
        with self._resolve_lock:
            if self.done():
                return False
            self.set_exception(error)
            return True

    def cancel(self) -> bool:
        return False

    # -- inspection --------------------------------------------------------

    @property
    def state(self) -> SignalState:
        if not self.done():
            return SignalState.PENDING
        if self.exception() is None:
            return SignalState.SUCCEEDED
        return SignalState.FAILED

    @property
    def is_success(self) -> bool:
        return self.state is SignalState.SUCCEEDED

    @property
    def error(self) -> BaseException | None:
        """The failure cause, or ``None`` while pending or after success."""
        if not self.done():
            return None
        return self.exception()

    def export_result(self) -> SpanExportResult:
        """Map the current state onto the OpenTelemetry SDK result enum.

        A pending signal maps to ``FAILURE``; call :meth:`join` first to wait.
        """
        if self.is_success:
            return SpanExportResult.SUCCESS
        return SpanExportResult.FAILURE

    def when_complete(self, callback: Callable[[CompletionSignal], object]) -> CompletionSignal:
        """Run ``callback`` once resolved (immediately if already resolved)."""
        self.add_done_callback(callback)
        return self

    def join(self, timeout: float | None = None) -> CompletionSignal:
        """Block up to ``timeout`` seconds for resolution and return ``self``."""
        futures.wait([self], timeout=timeout)
        return self


def _failure_of(sub: futures.Future) -> BaseException | None:
    if sub.cancelled():
        return NewRelicExporterError("send was cancelled")
    return sub.exception()
