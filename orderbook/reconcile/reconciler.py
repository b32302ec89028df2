"""Reconciler: diff fresh orders against persisted state and apply the plan."""

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field

from orderbook.models.common import OrderStatus, Side, TraceId, utc_now_iso
from orderbook.models.order import Order, PersistedOrder, parse_order
from orderbook.storage import order_repo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcilePlan:
    to_close: list[str] = field(default_factory=list)
    to_upsert: list[Order] = field(default_factory=list)


@dataclass(frozen=True)
class ApplyResult:
    closed: int
    saved: int
    failed: int


def parse_orders(
    raw_orders: Iterable[dict], side: Side, trace_id: TraceId = "-"
) -> list[Order]:
    """Parse raw upstream records, skipping ones that cannot be keyed."""
    orders: list[Order] = []
    for raw in raw_orders:
        try:
            orders.append(parse_order(raw, side))
        except ValueError as e:
            logger.warning("Skipping %s record trace=%s: %s", side, trace_id, e)
    return orders


def reconcile(
    fresh_orders: list[Order], persisted_orders: list[PersistedOrder]
) -> ReconcilePlan:
    """Close persisted orders missing from the fresh set, upsert every fresh one.

    Closures ignore the persisted status; re-closing is a no-op downstream.
    A fresh id seen twice is upserted once, first occurrence wins.
    """
    fresh_ids = {o.external_id for o in fresh_orders}
    to_close = [
        p.external_id for p in persisted_orders if p.external_id not in fresh_ids
    ]

    seen: set[str] = set()
    to_upsert: list[Order] = []
    for order in fresh_orders:
        if order.external_id in seen:
            continue
        seen.add(order.external_id)
        to_upsert.append(order)

    return ReconcilePlan(to_close=to_close, to_upsert=to_upsert)


def apply_plan(
    conn: sqlite3.Connection, plan: ReconcilePlan, trace_id: TraceId = "-"
) -> ApplyResult:
    """Apply closes, then upserts. Per-record upsert failures are skipped."""
    now = utc_now_iso()

    closed = 0
    for external_id in plan.to_close:
        if order_repo.set_status(conn, external_id, OrderStatus.CLOSE, now):
            closed += 1

    saved = 0
    failed = 0
    for order in plan.to_upsert:
        try:
            order_repo.upsert_order(conn, order, now)
            saved += 1
        except (sqlite3.Error, ValueError) as e:
            conn.rollback()
            failed += 1
            logger.error(
                "Failed to save order %s trace=%s: %s",
                order.external_id, trace_id, e,
            )

    logger.info(
        "Reconciled: %d closed, %d saved, %d failed trace=%s",
        closed, saved, failed, trace_id,
    )
    return ApplyResult(closed=closed, saved=saved, failed=failed)
