"""Repository for persisted order-book entries."""

import sqlite3

from orderbook.models.common import OrderStatus, utc_now_iso
from orderbook.models.order import Order, PersistedOrder
from orderbook.storage.database import run_migrations


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the order_books table if it does not exist yet."""
    run_migrations(conn)


def upsert_order(
    conn: sqlite3.Connection, order: Order, now: str | None = None
) -> None:
    """Insert an order or overwrite the row with the same external id.

    created_at is kept from the first insert.
    """
    now = now or utc_now_iso()
    conn.execute(
        "INSERT INTO order_books "
        "(external_id, side, display_name, price, quantity, funds, status, "
        "created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
        "ON CONFLICT(external_id) DO UPDATE SET "
        "side = excluded.side, "
        "display_name = excluded.display_name, "
        "price = excluded.price, "
        "quantity = excluded.quantity, "
        "funds = excluded.funds, "
        "status = excluded.status, "
        "updated_at = excluded.updated_at",
        (
            order.external_id,
            order.side.value,
            order.display_name,
            str(order.price),
            str(order.quantity),
            str(order.funds),
            order.status.value,
            now,
            now,
        ),
    )
    conn.commit()


def set_status(
    conn: sqlite3.Connection,
    external_id: str,
    status: OrderStatus,
    now: str | None = None,
) -> bool:
    """Set an order's status. Returns False when nothing changed."""
    cursor = conn.execute(
        "UPDATE order_books SET status = ?, updated_at = ? "
        "WHERE external_id = ? AND status != ?",
        (status.value, now or utc_now_iso(), external_id, status.value),
    )
    conn.commit()
    return cursor.rowcount > 0


def list_orders(
    conn: sqlite3.Connection, status: OrderStatus | None = None
) -> list[PersistedOrder]:
    """All persisted orders, oldest first."""
    if status is None:
        rows = conn.execute(
            "SELECT * FROM order_books ORDER BY created_at ASC, id ASC"
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM order_books WHERE status = ? "
            "ORDER BY created_at ASC, id ASC",
            (status.value,),
        ).fetchall()
    return [PersistedOrder.from_row(r) for r in rows]


def get_order(conn: sqlite3.Connection, external_id: str) -> PersistedOrder | None:
    row = conn.execute(
        "SELECT * FROM order_books WHERE external_id = ?", (external_id,)
    ).fetchone()
    if row is None:
        return None
    return PersistedOrder.from_row(row)


def count_by_status(conn: sqlite3.Connection) -> dict[str, int]:
    rows = conn.execute(
        "SELECT status, COUNT(*) FROM order_books GROUP BY status"
    ).fetchall()
    return {row[0]: row[1] for row in rows}
