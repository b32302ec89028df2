"""TTL cache with in-flight request deduplication."""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3.0


class RequestCache:
    """Absorbs duplicate upstream calls.

    A fresh entry (younger than ``ttl``) is returned without calling
    ``fetch``. While a fetch for a key is outstanding, other callers for the
    same key wait on it and receive its result or exception.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Any, float]] = {}
        self._in_flight: dict[str, Future] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._fresh(key)

    def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Any],
        should_cache: Callable[[Any], bool] | None = None,
    ) -> Any:
        with self._lock:
            cached = self._fresh(key)
            if cached is not None:
                return cached
            pending = self._in_flight.get(key)
            if pending is None:
                pending = Future()
                self._in_flight[key] = pending
                owner = True
            else:
                owner = False

        if not owner:
            logger.debug("Joining in-flight request %s", key)
            return pending.result()

        try:
            result = fetch()
        except Exception as e:
            pending.set_exception(e)
            raise
        else:
            if should_cache is None or should_cache(result):
                with self._lock:
                    self._entries[key] = (result, self._clock())
            pending.set_result(result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _fresh(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        result, stored_at = entry
        if self._clock() - stored_at < self.ttl:
            return result
        del self._entries[key]
        return None
