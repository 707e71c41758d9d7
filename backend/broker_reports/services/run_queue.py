"""Per-user FIFO scheduling of extraction runs on a shared worker pool."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


class RunQueueClosedError(RuntimeError):
    """Raised when a run is submitted after the queue was closed."""


class UserRunQueue:
    """Run ids for one user execute one at a time in submission order.

    Each user with pending work occupies at most one pool thread, which drains
    that user's deque until it is empty. Different users drain concurrently up
    to ``max_workers``. The run being processed stays at the head of its deque
    until the handler returns.
    """

    def __init__(
        self,
        handler: Callable[[str], None],
        *,
        max_workers: int = 4,
        thread_name_prefix: str = "extraction-run",
    ) -> None:
        self._handler = handler
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix=thread_name_prefix)
        self._condition = threading.Condition()
        self._pending: dict[str, deque[str]] = {}
        self._closed = False

    def submit(self, user_id: str, run_id: str) -> None:
        with self._condition:
            if self._closed:
                raise RunQueueClosedError("Run queue is closed")
            user_queue = self._pending.get(user_id)
            if user_queue is not None:
                user_queue.append(run_id)
                return
            self._pending[user_id] = deque([run_id])
            self._executor.submit(self._drain, user_id)

    def pending_run_ids(self, user_id: str) -> list[str]:
        """Run ids still owned by the queue for a user, the active one first."""

        with self._condition:
            return list(self._pending.get(user_id, ()))

    def is_idle(self) -> bool:
        with self._condition:
            return not self._pending

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until every submitted run has been handled; ``False`` on timeout."""

        with self._condition:
            return self._condition.wait_for(lambda: not self._pending, timeout=timeout)

    def close(self, *, wait: bool = True) -> None:
        with self._condition:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def _drain(self, user_id: str) -> None:
        while True:
            with self._condition:
                user_queue = self._pending.get(user_id)
                if not user_queue:
                    self._pending.pop(user_id, None)
                    self._condition.notify_all()
                    return
                run_id = user_queue[0]

            try:
                self._handler(run_id)
            except Exception:
                logger.exception("extraction.run_handler_failed user_id=%s run_id=%s", user_id, run_id)

            with self._condition:
                user_queue.popleft()
                if not user_queue:
                    del self._pending[user_id]
                    self._condition.notify_all()
                    return
