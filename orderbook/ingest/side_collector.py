"""Side collector: walks every page of one side of the order book."""

import logging
import threading

from orderbook.ingest.orderbook_client import MalformedPageError
from orderbook.ingest.page_fetcher import PageFetcher
from orderbook.models.common import OrderStatus, Side, TraceId
from orderbook.models.fetch import SideResult

logger = logging.getLogger(__name__)


class SideCollector:
    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    def collect(
        self, side: Side, cancel: threading.Event | None = None
    ) -> SideResult:
        result = SideResult(side=side)
        self.collect_into(result, cancel)
        return result

    def collect_into(
        self,
        result: SideResult,
        cancel: threading.Event | None = None,
        trace_id: TraceId = "-",
    ) -> None:
        """Fill ``result`` page by page. Never raises.

        No new page is started once ``cancel`` is set.
        """
        side = result.side
        if cancel is not None and cancel.is_set():
            result.completed = True
            return
        try:
            first = self.fetcher.fetch(side, 1, trace_id)
            if first.rate_limited:
                logger.warning("Rate limited on %s orders, skipping side trace=%s", side, trace_id)
                result.rate_limited = True
                return
            if first.total_pages is None:
                raise MalformedPageError(
                    f"Invalid response for {side} orders: missing totalPage"
                )
            result.total_pages = first.total_pages
            if first.total_pages == 0:
                logger.info("No %s pages available trace=%s", side, trace_id)
                return

            for page_number in range(1, first.total_pages + 1):
                if cancel is not None and cancel.is_set():
                    logger.warning(
                        "Stopping %s collection at page %d/%d trace=%s",
                        side, page_number, first.total_pages, trace_id,
                    )
                    return
                page = first if page_number == 1 else self.fetcher.fetch(side, page_number, trace_id)
                if page.rate_limited:
                    logger.warning(
                        "Rate limited on %s page %d, keeping %d pages trace=%s",
                        side, page_number, result.pages_fetched, trace_id,
                    )
                    result.rate_limited = True
                    return
                result.add_page(
                    [{**order, "status": OrderStatus.OPEN.value} for order in page.orders]
                )
            logger.info(
                "Collected %d %s orders from %d pages trace=%s",
                len(result.orders), side, result.pages_fetched, trace_id,
            )
        except Exception as e:
            logger.error("Failed to fetch %s orders trace=%s: %s", side, trace_id, e)
            result.error = f"{side}: {e}"
        finally:
            result.completed = True
