"""
Delete ALL orders + order items from the database.

Confirmed orders are first moved back to pending so the stock they took is
returned to the warehouses it came from.

  cd backend && python scripts/reset_orders.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import delete, select

from core.config import settings
from core.logger import setup_logging
from db.database import get_engine, get_session_maker
from db.order import ORDER_CONFIRMED, ORDER_PENDING, Order, OrderItem
from services.ledger import StockLedger
from services.orders import OrderService


async def main() -> None:
    setup_logging(settings.log_level, settings.log_format)
    session_maker = get_session_maker()
    orders = OrderService(session_maker, StockLedger(session_maker))

    async with session_maker() as db:
        res = await db.execute(select(Order.id, Order.user_id).where(Order.status == ORDER_CONFIRMED))
        confirmed = res.all()

    for order_id, user_id in confirmed:
        await orders.update_status(order_id, user_id, ORDER_PENDING)

    async with session_maker() as db:
        async with db.begin():
            # Delete children first (FK)
            res_items = await db.execute(delete(OrderItem))
            res_orders = await db.execute(delete(Order))

    items_n = int(getattr(res_items, "rowcount", 0) or 0)
    orders_n = int(getattr(res_orders, "rowcount", 0) or 0)
    print(f"Restored stock for {len(confirmed)} confirmed orders")
    print(f"Deleted order_items: {items_n}, orders: {orders_n}")

    await get_engine().dispose()


if __name__ == "__main__":
    asyncio.run(main())
