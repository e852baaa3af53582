from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from core.converters import to_money
from core.errors import NotFoundError, ValidationError
from db.order import Order, OrderItem
from db.product import Product
from db.transfer import StockTransfer
from db.warehouse import Warehouse, WarehouseStock
from .transaction import TransactionalService, lock_all, lock_one


def _clean_name(name: Optional[str]) -> str:
    n = (name or "").strip()
    if not n:
        raise ValidationError("MISSING_NAME", "name is required")
    return n


def _clean_price(price) -> Decimal:
    try:
        p = to_money(price)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("INVALID_PRICE", f"Invalid price {price!r}") from None
    if p < 0:
        raise ValidationError("INVALID_PRICE", "price must be >= 0")
    return p


class ProductService(TransactionalService):

    def __init__(self, session_maker, ledger):
        super().__init__(session_maker)
        self.ledger = ledger

    async def list_products(self) -> List[Product]:
        async with self.transaction("list_products") as session:
            res = await session.execute(
                select(Product).options(selectinload(Product.warehouse)).order_by(Product.id)
            )
            return list(res.scalars().all())

    async def get_product(self, product_id: int) -> Product:
        async with self.transaction("get_product") as session:
            return await self._load(session, product_id)

    async def create_product(
        self,
        name: str,
        price,
        description: Optional[str] = None,
        stock: int = 0,
        warehouse_id: Optional[int] = None,
    ) -> Product:
        """Create a product; any initial stock is booked into its home warehouse."""
        name = _clean_name(name)
        price = _clean_price(price)
        stock = int(stock or 0)
        if stock < 0:
            raise ValidationError("INVALID_QUANTITY", "stock must be >= 0")
        if stock > 0 and warehouse_id is None:
            raise ValidationError("WAREHOUSE_REQUIRED", "Initial stock needs a warehouse_id")

        async with self.transaction("create_product") as session:
            if warehouse_id is not None:
                await self._get(session, Warehouse, warehouse_id)

            product = Product(
                name=name,
                description=description,
                price=price,
                stock=0,
                warehouse_id=warehouse_id,
            )
            session.add(product)
            await session.flush()

            if stock > 0:
                await self.ledger.increase(session, product.id, warehouse_id, stock)
            product = await self._load(session, product.id)

        self.logger.info("product_created", product_id=product.id, stock=product.stock, warehouse_id=warehouse_id)
        return product

    async def update_product(self, product_id: int, **changes) -> Product:
        """Update name, description, price or home warehouse.

        Stock is not editable here; it only moves through the ledger. Price
        changes do not touch existing orders, which keep their own copy.
        """
        async with self.transaction("update_product") as session:
            product = await lock_one(session, select(Product).where(Product.id == product_id))
            if product is None:
                raise NotFoundError("Product", product_id)

            if "name" in changes and changes["name"] is not None:
                product.name = _clean_name(changes["name"])
            if "description" in changes:
                product.description = changes["description"]
            if "price" in changes and changes["price"] is not None:
                product.price = _clean_price(changes["price"])
            if "warehouse_id" in changes:
                warehouse_id = changes["warehouse_id"]
                if warehouse_id is not None:
                    await self._get(session, Warehouse, warehouse_id)
                product.warehouse_id = warehouse_id

            await session.flush()
            product = await self._load(session, product_id)

        self.logger.info("product_updated", product_id=product_id, fields=sorted(changes))
        return product

    async def delete_product(self, product_id: int) -> None:
        """Delete a product and everything that references it.

        Its order lines go, and any order left with no lines goes with them;
        its stock rows and transfers are removed. Stock taken by confirmed
        orders is not put back since the product no longer exists.
        """
        async with self.transaction("delete_product") as session:
            # same lock order as confirmations and transfers:
            # orders / transfers, then stock rows by warehouse id, then the product
            orders = await lock_all(
                session,
                select(Order)
                .where(Order.id.in_(select(OrderItem.order_id).where(OrderItem.product_id == product_id)))
                .order_by(Order.id),
            )
            order_ids = [o.id for o in orders]
            await lock_all(
                session,
                select(StockTransfer).where(StockTransfer.product_id == product_id).order_by(StockTransfer.id),
            )
            await lock_all(
                session,
                select(WarehouseStock)
                .where(WarehouseStock.product_id == product_id)
                .order_by(WarehouseStock.warehouse_id),
            )
            product = await lock_one(session, select(Product).where(Product.id == product_id))
            if product is None:
                raise NotFoundError("Product", product_id)

            await session.execute(delete(OrderItem).where(OrderItem.product_id == product_id))

            emptied: List[int] = []
            if order_ids:
                res = await session.execute(
                    select(Order.id)
                    .outerjoin(OrderItem, OrderItem.order_id == Order.id)
                    .where(Order.id.in_(order_ids))
                    .group_by(Order.id)
                    .having(func.count(OrderItem.id) == 0)
                )
                emptied = [r[0] for r in res.all()]
                if emptied:
                    await session.execute(delete(Order).where(Order.id.in_(emptied)))

            await session.execute(delete(StockTransfer).where(StockTransfer.product_id == product_id))
            await session.execute(delete(WarehouseStock).where(WarehouseStock.product_id == product_id))
            await session.execute(delete(Product).where(Product.id == product_id))

        self.logger.info(
            "product_deleted",
            product_id=product_id,
            orders_touched=len(order_ids),
            orders_removed=len(emptied),
        )

    async def _load(self, session, product_id: int) -> Product:
        res = await session.execute(
            select(Product)
            .options(selectinload(Product.warehouse))
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        product = res.scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", product_id)
        return product
