"""Background execution of persistence calls.

Durability must never add latency to the request that caused a write, so
every call to the persistence backend is queued on a single worker thread.
A single worker keeps writes to the backend in submission order.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable

from context_cache.errors import log_exception

logger = logging.getLogger(__name__)


class BackgroundWriter:
    """Runs persistence operations off the request path.

    Failures are logged and otherwise ignored; the in-memory caches stay
    authoritative for the life of the process.

    Example:
        >>> writer = BackgroundWriter()
        >>> writer.submit("persist weather", backend.put, "weather", record)
        >>> writer.flush()
        >>> writer.close()
    """

    def __init__(self, thread_name_prefix: str = "context-cache-writer") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name_prefix)
        self._pending: set[Future[Any]] = set()
        self._lock = threading.Lock()
        self._closed = False
        self.failures = 0

    def submit(self, description: str, fn: Callable[..., Any], *args: Any) -> Future[Any] | None:
        """Queue ``fn(*args)``.

        Returns:
            The future, or None if the writer is already closed.
        """
        with self._lock:
            if self._closed:
                logger.debug(f"Writer closed, dropping: {description}")
                return None
            future = self._executor.submit(self._run, description, fn, args)
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _run(self, description: str, fn: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            with self._lock:
                self.failures += 1
            log_exception(logger, f"Background persistence failed ({description})", e)
            return None

    def _forget(self, future: Future[Any]) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for queued operations to finish.

        Returns:
            True if everything finished within ``timeout``.
        """
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self, wait_for_pending: bool = True) -> None:
        """Stop accepting work and shut the worker down."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait_for_pending)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)
