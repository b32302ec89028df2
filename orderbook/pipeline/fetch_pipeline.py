"""Fetch pipeline: collect both sides, reconcile against the store, summarize."""

import logging
import sqlite3
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, wait

from orderbook.config.loader import config_hash
from orderbook.config.schema import TrackerConfig
from orderbook.ingest.orderbook_client import OrderBookClient
from orderbook.ingest.page_fetcher import PageFetcher
from orderbook.ingest.side_collector import SideCollector
from orderbook.models.common import RunSource, Side, TraceId
from orderbook.models.fetch import SideResult
from orderbook.models.reporting import RunSummary
from orderbook.reconcile.reconciler import (
    ReconcilePlan,
    apply_plan,
    parse_orders,
    reconcile,
)
from orderbook.reporting.formatters import format_summary_text
from orderbook.reporting.run_summarizer import RunSummarizer
from orderbook.storage import order_repo
from orderbook.storage.database import connect

logger = logging.getLogger(__name__)

SIDES = (Side.BUY, Side.SELL)


class FetchPipeline:
    """One reconciliation run per ``run()`` call.

    The page fetcher, and with it the request cache, lives as long as the
    pipeline so a daemon reusing the instance shares it across runs.
    """

    def __init__(
        self,
        config: TrackerConfig,
        db_path: str | None = None,
        fetcher: PageFetcher | None = None,
    ):
        self.config = config
        self.db_path = db_path or config.ops.db_path
        self.fetcher = fetcher or PageFetcher(
            OrderBookClient(config.upstream), config.fetch
        )
        self.collector = SideCollector(self.fetcher)

    def run(
        self, source: str = RunSource.MANUAL, trace_id: TraceId | None = None
    ) -> RunSummary:
        """Execute a full fetch/reconcile cycle. Never raises."""
        start_time = time.monotonic()
        trace_id = trace_id or str(uuid.uuid4())
        source = str(source)
        summarizer = RunSummarizer(trace_id, source)
        logger.info(
            "Run starting source=%s config=%s trace=%s",
            source, config_hash(self.config), trace_id,
        )

        conn: sqlite3.Connection | None = None
        try:
            # 1. SCHEMA
            conn = connect(self.db_path)
            order_repo.ensure_schema(conn)

            # 2. COLLECT
            sides, timed_out = self._collect_sides(trace_id)
            if timed_out:
                summarizer.record_timeout()
            for side_result in sides:
                summarizer.record_side(side_result)

            fresh = []
            for side_result in sides:
                fresh.extend(parse_orders(side_result.orders, side_result.side, trace_id))

            # 3. RECONCILE
            persisted = order_repo.list_orders(conn)
            if not fresh and not self.config.reconcile.close_on_empty_fetch:
                logger.warning(
                    "Empty fetch, leaving %d persisted orders untouched trace=%s",
                    len(persisted), trace_id,
                )
                plan = ReconcilePlan()
            else:
                plan = reconcile(fresh, persisted)

            # 4. APPLY
            summarizer.record_apply(apply_plan(conn, plan, trace_id))

        except Exception as e:
            logger.exception("Fetch pipeline failed trace=%s", trace_id)
            summarizer.record_failure(e)

        finally:
            if conn is not None:
                conn.close()

        summarizer.record_duration(time.monotonic() - start_time)
        summary = summarizer.finalize()
        logger.info("\n%s", format_summary_text(summary))
        return summary

    def _collect_sides(self, trace_id: TraceId) -> tuple[list[SideResult], bool]:
        """Collect both sides within the collection deadline.

        On timeout no new pages are started; requests already in flight
        finish in the background and still populate the cache.
        """
        fetch_cfg = self.config.fetch
        cancel = threading.Event()
        results = [SideResult(side=side) for side in SIDES]

        pool = ThreadPoolExecutor(
            max_workers=len(SIDES) if fetch_cfg.concurrent_sides else 1,
            thread_name_prefix="orderbook-side",
        )
        try:
            futures = [
                pool.submit(self.collector.collect_into, r, cancel, trace_id)
                for r in results
            ]
            _, not_done = wait(futures, timeout=fetch_cfg.collection_timeout_seconds)
            if not_done:
                cancel.set()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        timed_out = bool(not_done)
        if timed_out:
            logger.error(
                "Collection timed out after %.1fs, proceeding with partial data trace=%s",
                fetch_cfg.collection_timeout_seconds, trace_id,
            )
        return [r.snapshot() for r in results], timed_out
