"""Initial schema: the order_books table."""

import sqlite3

DDL = [
    # One row per upstream order, keyed by its external id
    """
    CREATE TABLE IF NOT EXISTS order_books (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        external_id TEXT NOT NULL UNIQUE,
        side TEXT NOT NULL CHECK(side IN ('buy', 'sell')),
        display_name TEXT NOT NULL,
        price TEXT NOT NULL,
        quantity TEXT NOT NULL,
        funds TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'open' CHECK(status IN ('open', 'close')),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_order_books_side ON order_books(side)",
    "CREATE INDEX IF NOT EXISTS idx_order_books_status ON order_books(status)",
    "CREATE INDEX IF NOT EXISTS idx_order_books_created_at ON order_books(created_at)",
]


def up(conn: sqlite3.Connection) -> None:
    for stmt in DDL:
        conn.execute(stmt)
