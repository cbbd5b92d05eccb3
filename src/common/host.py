from __future__ import annotations

import logging
import os
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Protocol


logger = logging.getLogger(__name__)

_worker = threading.local()


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Host(Protocol):
    """
    Primitives the hosting runtime provides to the SDK.

    - submit: run `fn` in the background; returns immediately.
    - call_later: run `fn` once after `delay` seconds; the handle cancels it.
    - quit: terminate the process.
    """

    def submit(self, fn: Callable[[], None]) -> None: ...

    def call_later(self, delay: float, fn: Callable[[], None]) -> Cancellable: ...

    def quit(self) -> None: ...


def _terminate_process() -> None:
    # SIGTERM lets the interpreter run its shutdown hooks
    os.kill(os.getpid(), signal.SIGTERM)


class ThreadHost:
    """
    Default host for plain Python processes.

    Background tasks run on a small thread pool; delayed calls use
    `threading.Timer`. `quit()` delegates to `on_quit` (SIGTERM to the
    current process by default).
    """

    def __init__(self, *, max_workers: int = 4, on_quit: Optional[Callable[[], None]] = None) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ludolio")
        self._on_quit = on_quit or _terminate_process
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[[], None]) -> None:
        if self._closed:
            logger.debug("Host closed; dropping background task %r", fn)
            return
        self._executor.submit(self._run_task, fn)

    def call_later(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, self._run, args=(fn,))
        timer.daemon = True
        timer.start()
        return timer

    def quit(self) -> None:
        logger.warning("Terminating process")
        self._on_quit()

    def in_worker(self) -> bool:
        """True when called from a task running on this host's pool."""
        return getattr(_worker, "host", None) is self

    def close(self, *, wait: bool = False) -> None:
        """
        Stop accepting tasks; queued ones are dropped unless `wait` is set.

        From one of the pool's own workers the pool cannot be joined, so
        `wait` then only keeps the queued tasks and returns immediately.
        """
        self._closed = True
        if wait and self.in_worker():
            logger.debug("Host closed from a worker; not waiting for queued tasks")
            self._executor.shutdown(wait=False, cancel_futures=False)
            return
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def _run_task(self, fn: Callable[[], None]) -> None:
        _worker.host = self
        try:
            self._run(fn)
        finally:
            _worker.host = None

    @staticmethod
    def _run(fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            logger.exception("Background task %r failed", fn)


__all__ = ["Host", "Cancellable", "ThreadHost"]
