"""Run reporting models."""

from dataclasses import dataclass, field

from orderbook.models.common import TraceId


@dataclass
class RunSummary:
    trace_id: TraceId
    source: str
    success: bool = True
    message: str = ""
    total_buy_orders: int = 0
    total_sell_orders: int = 0
    total_entries: int = 0
    saved_to_database: int = 0
    closed_orders: int = 0
    rate_limited: bool = False
    timed_out: bool = False
    buy_pages: int = 0
    sell_pages: int = 0
    duration_seconds: float = 0.0
    error: str | None = None
    details: str | None = None
    errors: list[str] = field(default_factory=list)
