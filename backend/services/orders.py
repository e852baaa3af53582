"""
Order lifecycle.

    pending   --confirm-->  confirmed
    pending   --cancel--->  cancelled
    confirmed --revert--->  pending      (stock restored)
    confirmed --cancel--->  cancelled    (stock restored)
    cancelled is final

Stock is only taken when an order enters ``confirmed``; creating an order
checks availability but does not decrement anything.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from core.converters import to_money
from core.errors import (
    ConflictingStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from db.order import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_PENDING,
    ORDER_STATUSES,
    Order,
    OrderItem,
)
from db.product import Product
from db.users import User
from db.warehouse import Warehouse, WarehouseStock
from .ledger import StockLedger
from .transaction import TransactionalService, lock_one


def _order_query():
    return select(Order).options(
        selectinload(Order.user),
        selectinload(Order.items).selectinload(OrderItem.product),
    )


def _validate_lines(items: Sequence) -> None:
    if not items:
        raise ValidationError("EMPTY_ORDER", "Order must contain at least one item")
    for i, it in enumerate(items):
        if it.product_id is None:
            raise ValidationError("MISSING_PRODUCT", f"product_id is required for item {i}")
        if it.quantity is None or int(it.quantity) <= 0:
            raise ValidationError("INVALID_QUANTITY", f"quantity must be > 0 for item {i}")


def normalize_order_status(status: str) -> str:
    s = (status or "").strip().lower()
    if not s:
        raise ValidationError("MISSING_STATUS", "Status is required")
    if s not in ORDER_STATUSES:
        raise ValidationError("INVALID_STATUS", f"Invalid status {status!r}; expected one of {list(ORDER_STATUSES)}")
    return s


class OrderService(TransactionalService):

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], ledger: StockLedger):
        super().__init__(session_maker)
        self.ledger = ledger

    async def create_order(self, user_id: int, items: Sequence) -> Order:
        """Create a pending order.

        ``items`` are objects with ``product_id`` and ``quantity``. Prices are
        copied from the products as they are right now; the total is derived
        from those copies.
        """
        _validate_lines(items)

        async with self.transaction("create_order") as session:
            await self._get(session, User, user_id)

            # per product, line quantities in the order confirmation will place them
            wanted: Dict[int, List[int]] = defaultdict(list)
            for it in items:
                wanted[int(it.product_id)].append(int(it.quantity))

            products: Dict[int, Product] = {}
            for product_id in sorted(wanted):
                product = await session.get(Product, product_id)
                if product is None:
                    raise NotFoundError("Product", product_id)
                await self.ledger.plan_lines(session, product_id, wanted[product_id])
                products[product_id] = product

            total = Decimal("0")
            order_items: List[OrderItem] = []
            for it in items:
                product = products[int(it.product_id)]
                price = to_money(product.price)
                order_items.append(
                    OrderItem(
                        product=product,
                        product_id=product.id,
                        quantity=int(it.quantity),
                        price=price,
                    )
                )
                total += price * int(it.quantity)

            order = Order(
                user_id=user_id,
                status=ORDER_PENDING,
                total_amount=to_money(total),
                items=order_items,
            )
            session.add(order)
            await session.flush()
            order = await self._load(session, order.id)

        self.logger.info(
            "order_created",
            order_id=order.id,
            user_id=user_id,
            items=len(order_items),
            total_amount=str(order.total_amount),
        )
        return order

    async def get_order(self, order_id: int, user_id: int) -> Order:
        async with self.transaction("get_order") as session:
            res = await session.execute(
                _order_query().where(Order.id == order_id, Order.user_id == user_id)
            )
            order = res.scalar_one_or_none()
            if order is None:
                raise NotFoundError("Order", order_id)
            return order

    async def list_orders(self, user_id: int) -> List[Order]:
        async with self.transaction("list_orders") as session:
            res = await session.execute(
                _order_query()
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
            )
            return list(res.scalars().all())

    async def update_status(self, order_id: int, user_id: int, new_status: str) -> Order:
        new_status = normalize_order_status(new_status)

        async with self.transaction("update_order_status") as session:
            order = await lock_one(
                session, select(Order).where(Order.id == order_id, Order.user_id == user_id)
            )
            if order is None:
                raise NotFoundError("Order", order_id)

            current = order.status
            if current == new_status:
                self.logger.info("order_status_unchanged", order_id=order_id, status=current)
                return await self._load(session, order_id)

            if current == ORDER_CANCELLED:
                raise InvalidTransitionError(
                    "ORDER_CANCELLED",
                    current,
                    new_status,
                    detail="Cancelled orders cannot change status",
                )

            order.status = new_status

            res = await session.execute(
                select(OrderItem)
                .where(OrderItem.order_id == order_id)
                .order_by(OrderItem.product_id, OrderItem.id)
            )
            items = list(res.scalars().all())

            if new_status == ORDER_CONFIRMED:
                await self._take_stock(session, items)
            elif current == ORDER_CONFIRMED:
                await self._restore_stock(session, items)

            await session.flush()
            order = await self._load(session, order_id)

        self.logger.info(
            "order_status_changed",
            order_id=order_id,
            user_id=user_id,
            from_status=current,
            to_status=new_status,
        )
        return order

    async def delete_order(self, order_id: int, user_id: int) -> None:
        """Remove an order and its items. Stock is left as it is."""
        async with self.transaction("delete_order") as session:
            order = await lock_one(
                session, select(Order).where(Order.id == order_id, Order.user_id == user_id)
            )
            if order is None:
                raise NotFoundError("Order", order_id)
            status = order.status

            await session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
            await session.execute(delete(Order).where(Order.id == order_id))

        self.logger.info("order_deleted", order_id=order_id, user_id=user_id, status=status)

    # ------------------------------------------------------------------

    async def _take_stock(self, session: AsyncSession, items: List[OrderItem]) -> None:
        # items arrive sorted by product id, which keeps lock order stable across requests
        for item in items:
            location = await self.ledger.check_availability(
                session, item.product_id, item.quantity, lock=True
            )
            await self.ledger.decrease(session, item.product_id, location.warehouse_id, item.quantity)
            item.warehouse_id = location.warehouse_id

    async def _restore_stock(self, session: AsyncSession, items: List[OrderItem]) -> None:
        for item in items:
            warehouse_id = item.warehouse_id
            if warehouse_id is None:
                warehouse_id = await self._fallback_location(session, item)
            await self.ledger.increase(session, item.product_id, warehouse_id, item.quantity)
            item.warehouse_id = None

    async def _fallback_location(self, session: AsyncSession, item: OrderItem) -> int:
        """Where to put stock back when the original warehouse is gone.

        The product's home warehouse if it has one, else the lowest-id active
        warehouse already holding the product, else the lowest-id active
        warehouse at all (its stock row is created on the way in).
        """
        product = await session.get(Product, item.product_id)
        if product is not None and product.warehouse_id is not None:
            return product.warehouse_id

        res = await session.execute(
            select(WarehouseStock.warehouse_id)
            .join(Warehouse, Warehouse.id == WarehouseStock.warehouse_id)
            .where(WarehouseStock.product_id == item.product_id, Warehouse.is_active.is_(True))
            .order_by(WarehouseStock.warehouse_id)
            .limit(1)
        )
        warehouse_id = res.scalar_one_or_none()
        if warehouse_id is None:
            res = await session.execute(
                select(Warehouse.id).where(Warehouse.is_active.is_(True)).order_by(Warehouse.id).limit(1)
            )
            warehouse_id = res.scalar_one_or_none()
        if warehouse_id is None:
            raise ConflictingStateError(
                "NO_RESTORE_LOCATION",
                f"No warehouse to return stock of product {item.product_id} to",
                order_id=item.order_id,
                product_id=item.product_id,
            )
        return warehouse_id

    async def _load(self, session: AsyncSession, order_id: int) -> Order:
        res = await session.execute(
            _order_query()
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return res.scalar_one()
