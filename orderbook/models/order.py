"""Order models and raw upstream record parsing."""

import sqlite3
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from orderbook.models.common import OrderStatus, Side

ZERO = Decimal("0")
UNKNOWN_USER = "Unknown"


@dataclass(frozen=True)
class Order:
    external_id: str
    side: Side
    display_name: str
    price: Decimal
    quantity: Decimal
    funds: Decimal
    status: OrderStatus = OrderStatus.OPEN


@dataclass(frozen=True)
class PersistedOrder:
    id: int
    external_id: str
    side: str
    display_name: str
    price: Decimal
    quantity: Decimal
    funds: Decimal
    status: OrderStatus
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PersistedOrder":
        return cls(
            id=row["id"],
            external_id=row["external_id"],
            side=row["side"],
            display_name=row["display_name"],
            price=to_decimal(row["price"]),
            quantity=to_decimal(row["quantity"]),
            funds=to_decimal(row["funds"]),
            status=OrderStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uid": self.external_id,
            "side": self.side,
            "username": self.display_name,
            "price": str(self.price),
            "quantity": str(self.quantity),
            "funds": str(self.funds),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def to_decimal(value: object) -> Decimal:
    """Parse a numeric field, falling back to 0 for anything unusable.

    Booleans, non-finite and negative values count as unusable.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not parsed.is_finite() or parsed < 0:
        return ZERO
    return parsed


def parse_order(raw: dict, side: Side) -> Order:
    """Map an upstream order record to an Order.

    Raises ValueError when the record carries no id.
    """
    external_id = raw.get("id")
    if external_id is None or str(external_id).strip() == "":
        raise ValueError(f"Order record has no id: {raw!r}")

    display_name = raw.get("userShortName") or raw.get("username") or UNKNOWN_USER
    return Order(
        external_id=str(external_id),
        side=side,
        display_name=str(display_name),
        price=to_decimal(raw.get("price")),
        quantity=to_decimal(raw.get("size")),
        funds=to_decimal(raw.get("funds")),
    )
