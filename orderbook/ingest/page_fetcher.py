"""Page fetcher: one order-book page with caching, dedup and retries."""

import json
import logging
from collections.abc import Callable

import httpx

from orderbook.config.schema import FetchConfig
from orderbook.ingest.orderbook_client import MalformedPageError, OrderBookClient
from orderbook.ingest.request_cache import RequestCache
from orderbook.ingest.retry import retry_with_backoff
from orderbook.models.common import Side, TraceId
from orderbook.models.fetch import PageResult

logger = logging.getLogger(__name__)


def is_transient(error: Exception) -> bool:
    """Errors worth another attempt: transport failures, non-2xx, bad bodies."""
    return isinstance(
        error, (httpx.RequestError, httpx.HTTPStatusError, MalformedPageError)
    )


class PageFetcher:
    def __init__(
        self,
        client: OrderBookClient,
        config: FetchConfig | None = None,
        cache: RequestCache | None = None,
        sleep_fn: Callable[[float], None] | None = None,
    ):
        self.client = client
        self.config = config or FetchConfig()
        self.cache = cache or RequestCache(ttl=self.config.cache_ttl_seconds)
        self.sleep_fn = sleep_fn

    def cache_key(self, payload: dict) -> str:
        return f"{self.client.config.url}-{json.dumps(payload, sort_keys=True)}"

    def fetch(self, side: Side, page_number: int, trace_id: TraceId = "-") -> PageResult:
        """Fetch one page. Raises the last error once retries are exhausted.

        A caller joining an in-flight request sees the log lines of the run
        that started it.
        """
        payload = self.client.build_payload(side, page_number)
        return self.cache.get_or_fetch(
            self.cache_key(payload),
            lambda: self._fetch_with_retry(payload, trace_id),
            should_cache=lambda result: not result.rate_limited,
        )

    def _fetch_with_retry(self, payload: dict, trace_id: TraceId) -> PageResult:
        return retry_with_backoff(
            lambda: self.client.fetch_page(payload, trace_id),
            max_attempts=self.config.max_attempts,
            base_delay=self.config.retry_base_delay_ms / 1000,
            retry_if=is_transient,
            sleep_fn=self.sleep_fn,
            label=f"{payload['side']} page {payload['currentPage']} trace={trace_id}",
        )
