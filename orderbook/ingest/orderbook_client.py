"""HTTP client for the paginated upstream order book."""

import logging

import httpx

from orderbook.config.schema import UpstreamConfig
from orderbook.models.common import Side, TraceId
from orderbook.models.fetch import PageResult

logger = logging.getLogger(__name__)

ORDER_LIST_FIELDS = ("data", "items", "orders")


class MalformedPageError(ValueError):
    """The upstream returned a body that is not a usable page envelope."""


class OrderBookClient:
    def __init__(self, config: UpstreamConfig | None = None):
        self.config = config or UpstreamConfig()

    def build_payload(self, side: Side, page_number: int) -> dict:
        return {
            "currentPage": page_number,
            "pageSize": self.config.page_size,
            "deliveryCurrency": self.config.delivery_currency,
            "ownOrder": False,
            "maxAmount": None,
            "minAmount": None,
            "sortFields": None,
            "side": side.value,
        }

    def fetch_page(self, payload: dict, trace_id: TraceId = "-") -> PageResult:
        """POST one page request.

        HTTP 429 returns the rate-limited sentinel instead of raising.
        """
        try:
            resp = httpx.post(
                self.config.url,
                params=self.config.params,
                headers=self.config.headers,
                json=payload,
                timeout=self.config.request_timeout_seconds,
            )
            if resp.status_code == 429:
                logger.warning(
                    "Rate limited on %s page %s trace=%s",
                    payload.get("side"), payload.get("currentPage"), trace_id,
                )
                return PageResult.rate_limited_sentinel()
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Order book API error for side=%s page=%s trace=%s: %s",
                payload.get("side"), payload.get("currentPage"), trace_id, e,
            )
            raise
        except httpx.RequestError as e:
            logger.error(
                "Order book request failed for side=%s page=%s trace=%s: %s",
                payload.get("side"), payload.get("currentPage"), trace_id, e,
            )
            raise

        try:
            body = resp.json()
        except ValueError as e:
            raise MalformedPageError(f"Response is not JSON: {e}") from e
        return parse_envelope(body)


def parse_envelope(body: object) -> PageResult:
    """Extract the order list and page count from a response envelope."""
    if not isinstance(body, dict):
        raise MalformedPageError(f"Expected a JSON object, got {type(body).__name__}")

    orders: list = []
    for name in ORDER_LIST_FIELDS:
        value = body.get(name)
        if value:
            orders = value
            break
    if not isinstance(orders, list):
        raise MalformedPageError(f"Order list is not an array: {orders!r}")

    total_pages = body.get("totalPage")
    if total_pages is not None:
        try:
            total_pages = int(total_pages)
        except (TypeError, ValueError) as e:
            raise MalformedPageError(f"Invalid totalPage: {total_pages!r}") from e

    return PageResult(
        orders=[o for o in orders if isinstance(o, dict)],
        total_pages=total_pages,
    )
