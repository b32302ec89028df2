"""Page and side collection models."""

import threading
from dataclasses import dataclass, field

from orderbook.models.common import Side


@dataclass(frozen=True)
class PageResult:
    orders: list[dict]
    total_pages: int | None
    rate_limited: bool = False

    @classmethod
    def rate_limited_sentinel(cls) -> "PageResult":
        return cls(orders=[], total_pages=0, rate_limited=True)


@dataclass
class SideResult:
    """Orders collected for one side.

    Pages are appended under a lock so a snapshot can be taken while a
    collector thread is still running.
    """

    side: Side
    orders: list[dict] = field(default_factory=list)
    total_pages: int = 0
    pages_fetched: int = 0
    rate_limited: bool = False
    error: str | None = None
    completed: bool = False
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def add_page(self, records: list[dict]) -> None:
        with self._lock:
            self.orders.extend(records)
            self.pages_fetched += 1

    def snapshot(self) -> "SideResult":
        with self._lock:
            return SideResult(
                side=self.side,
                orders=list(self.orders),
                total_pages=self.total_pages,
                pages_fetched=self.pages_fetched,
                rate_limited=self.rate_limited,
                error=self.error,
                completed=self.completed,
            )
