from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.order import Order
from app.services.order_status import REVENUE_STATUSES
from app.services.orders import list_orders_by_date_range
from app.services.visits import count_in_range

TOP_PRODUCTS_LIMIT = 5


def build_dashboard_summary(db: Session, start: datetime, end: datetime) -> dict[str, Any]:
    """Resumo do painel: receita considera só pedidos com status pago.

    Diferente do agregado do cliente, que soma todo pedido criado.
    """
    orders = list_orders_by_date_range(db, start, end)
    return summarize_orders(orders, count_in_range(db, start, end), start, end)


def empty_dashboard_summary(start: datetime, end: datetime) -> dict[str, Any]:
    return summarize_orders([], 0, start, end)


def summarize_orders(orders: list[Order], visits: int, start: datetime, end: datetime) -> dict[str, Any]:
    paid_orders = [order for order in orders if order.status in REVENUE_STATUSES]

    revenue_cents = sum(int(order.total_cents or 0) for order in paid_orders)
    delivery_fees_cents = sum(int(order.delivery_fee_cents or 0) for order in paid_orders)

    product_counts: dict[str, dict[str, Any]] = defaultdict(lambda: {"name": "", "quantity": 0})
    for order in paid_orders:
        for item in order.items or []:
            product_id = item.get("product_id")
            if not product_id:
                continue
            entry = product_counts[product_id]
            entry["name"] = entry["name"] or item.get("name", "")
            entry["quantity"] += int(item.get("quantity", 0) or 0)

    top_products = sorted(
        (
            {"product_id": product_id, "name": data["name"], "quantity": data["quantity"]}
            for product_id, data in product_counts.items()
        ),
        key=lambda row: (-row["quantity"], row["product_id"]),
    )[:TOP_PRODUCTS_LIMIT]

    conversion_rate = round(len(paid_orders) / visits * 100, 2) if visits else 0.0

    status_breakdown: dict[str, int] = defaultdict(int)
    for order in orders:
        status_breakdown[order.status] += 1

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "orders_count": len(orders),
        "paid_orders_count": len(paid_orders),
        "revenue_cents": revenue_cents,
        "delivery_fees_cents": delivery_fees_cents,
        "average_ticket_cents": int(revenue_cents / len(paid_orders)) if paid_orders else 0,
        "visits": visits,
        "conversion_rate": conversion_rate,
        "status_breakdown": dict(status_breakdown),
        "top_products": top_products,
    }
