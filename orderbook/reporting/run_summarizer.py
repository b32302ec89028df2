"""Run summarizer: aggregates pipeline outputs into a RunSummary."""

from orderbook.models.common import Side, TraceId
from orderbook.models.fetch import SideResult
from orderbook.models.reporting import RunSummary
from orderbook.reconcile.reconciler import ApplyResult

SUCCESS_MESSAGE = "Order book data processed and saved to database successfully"
RATE_LIMITED_MESSAGE = (
    "Order book processing completed - no new data due to rate limiting"
)
FAILURE_MESSAGE = "Failed to process order book data"


class RunSummarizer:
    def __init__(self, trace_id: TraceId, source: str):
        self.summary = RunSummary(trace_id=trace_id, source=source)

    def record_side(self, result: SideResult) -> None:
        if result.side == Side.BUY:
            self.summary.total_buy_orders = len(result.orders)
            self.summary.buy_pages = result.total_pages
        else:
            self.summary.total_sell_orders = len(result.orders)
            self.summary.sell_pages = result.total_pages
        if result.error:
            self.summary.errors.append(result.error)

    def record_timeout(self) -> None:
        self.summary.timed_out = True

    def record_apply(self, result: ApplyResult) -> None:
        self.summary.saved_to_database = result.saved
        self.summary.closed_orders = result.closed

    def record_duration(self, seconds: float) -> None:
        self.summary.duration_seconds = seconds

    def record_failure(self, error: Exception) -> None:
        self.summary.success = False
        self.summary.error = FAILURE_MESSAGE
        self.summary.details = str(error)
        self.summary.errors.append(str(error))

    def finalize(self) -> RunSummary:
        s = self.summary
        s.total_entries = s.total_buy_orders + s.total_sell_orders
        if s.success:
            s.rate_limited = s.total_entries == 0
            s.message = RATE_LIMITED_MESSAGE if s.rate_limited else SUCCESS_MESSAGE
        else:
            s.message = FAILURE_MESSAGE
        return s
