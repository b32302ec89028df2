"""Tests for the fetch pipeline end to end against a mocked upstream."""

import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import httpx
import pytest
import respx

from orderbook.config.schema import TrackerConfig
from orderbook.models.common import OrderStatus, Side
from orderbook.models.fetch import PageResult
from orderbook.models.order import Order
from orderbook.pipeline.fetch_pipeline import FetchPipeline
from orderbook.reporting.formatters import summary_payload
from orderbook.storage import order_repo

TEST_URL = "https://test-orderbook.example.com/orderBook"


def _seed(db: sqlite3.Connection, external_id: str, status=OrderStatus.OPEN) -> None:
    order_repo.upsert_order(
        db,
        Order(
            external_id=external_id,
            side=Side.BUY,
            display_name="seed",
            price=Decimal("1"),
            quantity=Decimal("1"),
            funds=Decimal("1"),
        ),
    )
    if status == OrderStatus.CLOSE:
        order_repo.set_status(db, external_id, OrderStatus.CLOSE)


class TestScenarios:
    @respx.mock
    def test_new_order_saved_and_missing_closed(self, config, db, book_responder, order):
        _seed(db, "B")
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [[order("A")]], "sell": []})
        )

        summary = FetchPipeline(config).run(source="manual", trace_id="t-1")

        assert summary.success
        assert summary.closed_orders == 1
        assert summary.saved_to_database == 1
        assert summary.total_entries == 1
        assert summary.total_buy_orders == 1
        assert summary.total_sell_orders == 0
        assert summary.rate_limited is False
        assert order_repo.get_order(db, "B").status == OrderStatus.CLOSE
        assert order_repo.get_order(db, "A").status == OrderStatus.OPEN

    @respx.mock
    def test_multi_page_both_sides(self, config, db, book_responder, order):
        respx.post(TEST_URL).mock(
            side_effect=book_responder({
                "buy": [[order("b1"), order("b2")], [order("b3")]],
                "sell": [[order("s1")]],
            })
        )
        summary = FetchPipeline(config).run()
        assert summary.total_buy_orders == 3
        assert summary.total_sell_orders == 1
        assert summary.buy_pages == 2
        assert summary.saved_to_database == 4
        assert order_repo.get_order(db, "s1").side == "sell"

    @respx.mock
    def test_both_sides_rate_limited_closes_open_orders(self, config, db, book_responder):
        _seed(db, "A")
        _seed(db, "B")
        _seed(db, "C", OrderStatus.CLOSE)
        respx.post(TEST_URL).mock(side_effect=book_responder({"buy": 429, "sell": 429}))

        summary = FetchPipeline(config).run(source="scheduled")

        assert summary.success
        assert summary.rate_limited is True
        assert summary.saved_to_database == 0
        assert summary.closed_orders == 2
        assert summary.errors == []
        assert order_repo.list_orders(db, OrderStatus.OPEN) == []

    @respx.mock
    def test_empty_fetch_keeps_store_when_configured(self, config, db, book_responder):
        _seed(db, "A")
        respx.post(TEST_URL).mock(side_effect=book_responder({"buy": 429, "sell": 429}))
        config = config.model_copy(
            update={"reconcile": config.reconcile.model_copy(
                update={"close_on_empty_fetch": False}
            )}
        )

        summary = FetchPipeline(config).run()

        assert summary.rate_limited is True
        assert summary.closed_orders == 0
        assert order_repo.get_order(db, "A").status == OrderStatus.OPEN

    @respx.mock
    def test_failed_side_does_not_block_other(self, config, db, book_responder, order):
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": 500, "sell": [[order("s1")]]})
        )
        summary = FetchPipeline(config).run()
        assert summary.success
        assert summary.total_buy_orders == 0
        assert summary.total_sell_orders == 1
        assert summary.saved_to_database == 1
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith("buy:")

    @respx.mock
    def test_reopens_returning_order(self, config, db, book_responder, order):
        _seed(db, "A", OrderStatus.CLOSE)
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [], "sell": [[order("A")]]})
        )
        summary = FetchPipeline(config).run()
        assert summary.closed_orders == 0
        row = order_repo.get_order(db, "A")
        assert row.status == OrderStatus.OPEN
        assert row.side == "sell"

    @respx.mock
    def test_second_run_is_noop(self, config, db, book_responder, order):
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [[order("A")]], "sell": [[order("B")]]})
        )
        pipeline = FetchPipeline(config)
        pipeline.run()
        before = order_repo.list_orders(db)
        second = pipeline.run()
        after = order_repo.list_orders(db)

        assert second.closed_orders == 0
        assert [(o.external_id, o.status, o.price) for o in before] == [
            (o.external_id, o.status, o.price) for o in after
        ]

    @respx.mock
    def test_cache_shared_within_ttl(self, config, db, book_responder, order):
        route = respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [[order("A")]], "sell": [[order("B")]]})
        )
        pipeline = FetchPipeline(config)
        pipeline.run()
        pipeline.run()
        # one request per side; page 1 is reused and the second run hits the cache
        assert route.call_count == 2

    @respx.mock
    def test_sequential_sides(self, config, db, book_responder, order):
        config = config.model_copy(
            update={"fetch": config.fetch.model_copy(update={"concurrent_sides": False})}
        )
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [[order("A")]], "sell": [[order("B")]]})
        )
        summary = FetchPipeline(config).run()
        assert summary.total_entries == 2

    @respx.mock
    def test_bad_numeric_field_saved_as_zero(self, config, db, book_responder, order):
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [[order("A", price="oops")]], "sell": []})
        )
        summary = FetchPipeline(config).run()
        assert summary.saved_to_database == 1
        assert order_repo.get_order(db, "A").price == Decimal("0")


class TestFailures:
    def test_schema_failure_returns_failed_summary(self, config, monkeypatch):
        def boom(conn):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(order_repo, "ensure_schema", boom)
        summary = FetchPipeline(config).run(source="manual", trace_id="t-fail")

        assert summary.success is False
        assert "disk I/O error" in summary.details
        payload = summary_payload(summary)
        assert payload["success"] is False
        assert payload["traceId"] == "t-fail"
        assert payload["source"] == "manual"

    @respx.mock
    def test_trace_id_generated(self, config, book_responder):
        respx.post(TEST_URL).mock(side_effect=book_responder({"buy": [], "sell": []}))
        summary = FetchPipeline(config).run()
        assert len(summary.trace_id) == 36


class BlockingFetcher:
    """Buy page 2 blocks until released; everything else answers at once."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls: list[tuple[Side, int]] = []

    def fetch(self, side: Side, page_number: int, trace_id: str = "-") -> PageResult:
        self.calls.append((side, page_number))
        if side == Side.BUY and page_number == 2:
            self.release.wait(timeout=10)
        return PageResult(
            orders=[{"id": f"{side}-{page_number}"}],
            total_pages=3 if side == Side.BUY else 1,
        )


class TestDeadline:
    @pytest.fixture
    def fast_config(self, config: TrackerConfig) -> TrackerConfig:
        return config.model_copy(
            update={"fetch": config.fetch.model_copy(
                update={"collection_timeout_seconds": 0.3}
            )}
        )

    def test_timeout_proceeds_with_partial_data(self, fast_config, db):
        fetcher = BlockingFetcher()
        try:
            summary = FetchPipeline(fast_config, fetcher=fetcher).run()
        finally:
            fetcher.release.set()

        assert summary.success
        assert summary.timed_out
        assert summary.total_buy_orders == 1
        assert summary.total_sell_orders == 1
        assert summary.saved_to_database == 2
        assert order_repo.get_order(db, "buy-1") is not None
        assert order_repo.get_order(db, "sell-1") is not None
        assert order_repo.get_order(db, "buy-2") is None


class TestTraceLogging:
    @respx.mock
    def test_every_failure_line_carries_trace(self, config, db, book_responder, caplog):
        _seed(db, "A")
        respx.post(TEST_URL).mock(side_effect=book_responder({"buy": 500, "sell": 429}))

        with caplog.at_level(logging.INFO, logger="orderbook"):
            summary = FetchPipeline(config).run(trace_id="run-7f3a")

        assert summary.success
        failures = [r for r in caplog.records if r.levelno >= logging.WARNING]
        # 500 retried to exhaustion, 429 sentinel, side-level failure lines
        assert len(failures) >= 5
        missing = [r.getMessage() for r in failures if "trace=run-7f3a" not in r.getMessage()]
        assert missing == []

    @respx.mock
    def test_summary_text_has_full_trace(self, config, db, book_responder, caplog):
        respx.post(TEST_URL).mock(side_effect=book_responder({"buy": [], "sell": []}))
        trace = "0f6c2a4e-8d1b-4c7e-9a3f-5b2d1e0c9f88"
        with caplog.at_level(logging.INFO, logger="orderbook"):
            FetchPipeline(config).run(trace_id=trace)
        assert any(trace in r.getMessage() and "===" in r.getMessage() for r in caplog.records)


class TestOverlappingRuns:
    @respx.mock
    def test_concurrent_runs_converge(self, config, db_path, book_responder, order):
        respx.post(TEST_URL).mock(
            side_effect=book_responder({"buy": [[order("A")]], "sell": [[order("B")]]})
        )
        runs = 6
        start = threading.Barrier(runs)

        def run_one(n: int):
            start.wait(timeout=5)
            return FetchPipeline(config).run(
                source="scheduled" if n % 2 else "manual", trace_id=f"overlap-{n}"
            )

        with ThreadPoolExecutor(max_workers=runs) as pool:
            summaries = list(pool.map(run_one, range(runs)))

        assert all(s.success for s in summaries)
        assert all(s.saved_to_database == 2 for s in summaries)

        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        try:
            open_ids = {o.external_id for o in order_repo.list_orders(conn, OrderStatus.OPEN)}
            assert open_ids == {"A", "B"}
            assert len(order_repo.list_orders(conn)) == 2
            versions = conn.execute("SELECT COUNT(*) FROM schema_versions").fetchone()[0]
            assert versions == 1
        finally:
            conn.close()
