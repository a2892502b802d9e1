"""In-flight request deduplication.

Concurrent callers asking for the same resource key share one underlying
call: the first caller runs the factory, the rest block on its Future and
observe the same result or exception.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDeduplicator:
    """Ensures at most one in-flight call per key."""

    def __init__(self) -> None:
        self._pending: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def dedupe(self, key: str, factory: Callable[[], T]) -> T:
        with self._lock:
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future

        if not owner:
            logger.debug("Joining in-flight request for '%s'", key)
            return future.result()

        try:
            result = factory()
        except BaseException as exc:
            self._release(key)
            future.set_exception(exc)
            raise
        self._release(key)
        future.set_result(result)
        return result

    def _release(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
