"""
Cooperative cancellation for long-running engine calls.

Engine stages accept an optional token and call ``raise_if_cancelled()``
between stages and inside their quadratic loops. BackgroundRecompute runs
the engine off the calling thread and abandons the previous run whenever a
newer one is submitted.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

import structlog

from ..core.issues import ComputationCancelled

logger = structlog.get_logger()


class CancellationToken:
    """Thread-safe cancellation flag."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ComputationCancelled("computation cancelled")


class BackgroundRecompute:
    """
    Single-worker executor where each submission supersedes the last.

    Example:
        recompute = BackgroundRecompute()
        future = recompute.submit(lambda token: engine.run(holes, token=token))
        result = future.result()
    """

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="py-blast")
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None

    def submit(self, job: Callable[[CancellationToken], object]) -> Future:
        """Cancel the in-flight job and queue job with a fresh token."""
        token = CancellationToken()
        with self._lock:
            if self._token is not None:
                self._token.cancel()
                logger.debug("Superseded in-flight computation")
            self._token = token
        return self._executor.submit(job, token)

    def cancel(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
