"""
Stock ledger: the only code allowed to change warehouse_stocks.quantity and
the denormalized products.stock.

Mutating methods take the caller's session and must run inside the caller's
transaction; they lock the (warehouse, product) row before touching it and
then lock the product row, in that order. The administrative operations at
the bottom open their own transaction.
"""
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from core.errors import ConflictingStateError, InsufficientStockError, NotFoundError, ValidationError
from db.product import Product
from db.warehouse import Warehouse, WarehouseStock
from .allocation import AllocationPolicy, policy_from_settings
from .transaction import TransactionalService, lock_all, lock_one


@dataclass(frozen=True)
class StockLocation:
    warehouse_id: int
    product_id: int
    quantity: int
    reserved_quantity: int

    @property
    def available(self) -> int:
        return self.quantity - self.reserved_quantity

    @classmethod
    def from_row(cls, row: WarehouseStock) -> "StockLocation":
        return cls(
            warehouse_id=row.warehouse_id,
            product_id=row.product_id,
            quantity=int(row.quantity or 0),
            reserved_quantity=int(row.reserved_quantity or 0),
        )


def _require_positive(quantity: int, what: str = "quantity"):
    if quantity is None or int(quantity) <= 0:
        raise ValidationError("INVALID_QUANTITY", f"{what} must be > 0")


class StockLedger(TransactionalService):

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        policy: Optional[AllocationPolicy] = None,
    ):
        super().__init__(session_maker)
        self.policy = policy or policy_from_settings()

    # ------------------------------------------------------------------
    # in-transaction primitives
    # ------------------------------------------------------------------

    async def check_availability(
        self,
        session: AsyncSession,
        product_id: int,
        quantity: int,
        lock: bool = False,
    ) -> StockLocation:
        """Pick one active warehouse able to cover ``quantity`` on its own.

        With ``lock=True`` all of the product's stock rows are held
        ``FOR UPDATE`` until the surrounding transaction ends, so the answer
        stays true for a decrement that follows.
        """
        _require_positive(quantity)
        rows = await self._candidates(session, product_id, lock=lock)
        return StockLocation.from_row(self._choose(rows, product_id, quantity))

    async def plan_lines(
        self,
        session: AsyncSession,
        product_id: int,
        quantities: Sequence[int],
    ) -> List[StockLocation]:
        """Place several lines of one product the way confirmation will.

        Lines are placed one after another, each on a single warehouse, with
        every placement reducing what the next line can see. Nothing is
        written or locked.
        """
        for q in quantities:
            _require_positive(q)
        remaining = [StockLocation.from_row(r) for r in await self._candidates(session, product_id)]
        placed: List[StockLocation] = []
        for q in quantities:
            chosen = self._choose(remaining, product_id, q)
            placed.append(chosen)
            remaining = [
                replace(c, quantity=c.quantity - q) if c.warehouse_id == chosen.warehouse_id else c
                for c in remaining
            ]
        return placed

    async def _candidates(
        self, session: AsyncSession, product_id: int, lock: bool = False
    ) -> Sequence[WarehouseStock]:
        stmt = (
            select(WarehouseStock)
            .join(Warehouse, Warehouse.id == WarehouseStock.warehouse_id)
            .where(WarehouseStock.product_id == product_id, Warehouse.is_active.is_(True))
            .order_by(WarehouseStock.warehouse_id)
        )
        if lock:
            return await lock_all(session, stmt, of=WarehouseStock)
        return (await session.execute(stmt)).scalars().all()

    def _choose(self, candidates, product_id: int, quantity: int):
        chosen = self.policy.choose(candidates, quantity)
        if chosen is None:
            best = max(candidates, key=lambda r: r.available, default=None)
            raise InsufficientStockError(
                product_id=product_id,
                required=quantity,
                available=max(best.available, 0) if best else 0,
                warehouse_id=best.warehouse_id if best else None,
            )
        return chosen

    async def lock_stocks(
        self,
        session: AsyncSession,
        product_id: int,
        warehouse_ids: Iterable[int],
    ) -> Dict[int, WarehouseStock]:
        """Lock the product's rows at the given warehouses, lowest id first.

        Missing rows are simply absent from the result.
        """
        ids = sorted({w for w in warehouse_ids if w is not None})
        if not ids:
            return {}
        rows = await lock_all(
            session,
            select(WarehouseStock)
            .where(WarehouseStock.product_id == product_id, WarehouseStock.warehouse_id.in_(ids))
            .order_by(WarehouseStock.warehouse_id),
        )
        return {r.warehouse_id: r for r in rows}

    async def decrease(
        self,
        session: AsyncSession,
        product_id: int,
        warehouse_id: int,
        quantity: int,
    ) -> WarehouseStock:
        _require_positive(quantity)
        stock = (await self.lock_stocks(session, product_id, [warehouse_id])).get(warehouse_id)
        available = stock.available if stock is not None else 0
        if available < quantity:
            raise InsufficientStockError(
                product_id=product_id,
                required=quantity,
                available=max(available, 0),
                warehouse_id=warehouse_id,
            )

        stock.quantity = stock.quantity - quantity
        product = await self._lock_product(session, product_id)
        product.stock = product.stock - quantity
        await session.flush()

        self.logger.debug(
            "stock_decreased",
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            remaining=stock.quantity,
        )
        return stock

    async def increase(
        self,
        session: AsyncSession,
        product_id: int,
        warehouse_id: int,
        quantity: int,
    ) -> WarehouseStock:
        _require_positive(quantity)
        stock = await self._get_or_create_locked(session, warehouse_id, product_id)
        stock.quantity = stock.quantity + quantity
        product = await self._lock_product(session, product_id)
        product.stock = product.stock + quantity
        await session.flush()

        self.logger.debug(
            "stock_increased",
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            remaining=stock.quantity,
        )
        return stock

    async def _lock_product(self, session: AsyncSession, product_id: int) -> Product:
        product = await lock_one(session, select(Product).where(Product.id == product_id))
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def _get_or_create_locked(self, session: AsyncSession, warehouse_id: int, product_id: int) -> WarehouseStock:
        # FOR UPDATE cannot lock a row that doesn't exist yet, so create it
        # first and let the unique constraint arbitrate between racing inserts.
        dialect = session.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = (
                insert(WarehouseStock)
                .values(warehouse_id=warehouse_id, product_id=product_id, quantity=0, reserved_quantity=0)
                .on_conflict_do_nothing(index_elements=["warehouse_id", "product_id"])
            )
            await session.execute(stmt)
            stock = (await self.lock_stocks(session, product_id, [warehouse_id])).get(warehouse_id)
        else:
            stock = (await self.lock_stocks(session, product_id, [warehouse_id])).get(warehouse_id)
            if stock is None:
                stock = WarehouseStock(warehouse_id=warehouse_id, product_id=product_id, quantity=0, reserved_quantity=0)
                session.add(stock)
                await session.flush()
        return stock

    # ------------------------------------------------------------------
    # administrative operations (own transaction)
    # ------------------------------------------------------------------

    def _stock_listing(self):
        return select(WarehouseStock).options(
            selectinload(WarehouseStock.warehouse),
            selectinload(WarehouseStock.product),
        )

    async def get_warehouse_stocks(self, warehouse_id: int) -> List[WarehouseStock]:
        async with self.transaction("get_warehouse_stocks") as session:
            await self._get(session, Warehouse, warehouse_id)
            res = await session.execute(
                self._stock_listing()
                .join(Product, Product.id == WarehouseStock.product_id)
                .where(WarehouseStock.warehouse_id == warehouse_id)
                .order_by(Product.name)
            )
            return list(res.scalars().all())

    async def get_product_stock(self, warehouse_id: int, product_id: int) -> WarehouseStock:
        async with self.transaction("get_product_stock") as session:
            res = await session.execute(
                self._stock_listing().where(
                    WarehouseStock.warehouse_id == warehouse_id,
                    WarehouseStock.product_id == product_id,
                )
            )
            stock = res.scalar_one_or_none()
            if stock is None:
                raise NotFoundError("Stock", {"warehouse_id": warehouse_id, "product_id": product_id})
            return stock

    async def get_all_stocks(self) -> List[WarehouseStock]:
        async with self.transaction("get_all_stocks") as session:
            res = await session.execute(
                self._stock_listing()
                .join(Warehouse, Warehouse.id == WarehouseStock.warehouse_id)
                .join(Product, Product.id == WarehouseStock.product_id)
                .order_by(Warehouse.name, Product.name)
            )
            return list(res.scalars().all())

    async def set_quantity(self, warehouse_id: int, product_id: int, quantity: int) -> WarehouseStock:
        """Overwrite the on-hand quantity (stock count); the difference flows into products.stock."""
        if quantity is None or int(quantity) < 0:
            raise ValidationError("INVALID_QUANTITY", "quantity must be >= 0")

        async with self.transaction("set_stock_quantity") as session:
            await self._get(session, Warehouse, warehouse_id)
            await self._get(session, Product, product_id)

            stock = await self._get_or_create_locked(session, warehouse_id, product_id)
            if quantity < stock.reserved_quantity:
                raise ConflictingStateError(
                    "QUANTITY_BELOW_RESERVED",
                    f"quantity {quantity} is below reserved quantity {stock.reserved_quantity}",
                    warehouse_id=warehouse_id,
                    product_id=product_id,
                )
            delta = int(quantity) - stock.quantity
            stock.quantity = int(quantity)
            product = await self._lock_product(session, product_id)
            product.stock = product.stock + delta
            await session.flush()

        self.logger.info(
            "stock_set",
            warehouse_id=warehouse_id,
            product_id=product_id,
            quantity=stock.quantity,
            delta=delta,
        )
        return stock

    async def add_stock(self, warehouse_id: int, product_id: int, quantity: int) -> WarehouseStock:
        _require_positive(quantity)
        async with self.transaction("add_stock") as session:
            await self._get(session, Warehouse, warehouse_id)
            await self._get(session, Product, product_id)
            stock = await self.increase(session, product_id, warehouse_id, quantity)

        self.logger.info(
            "stock_added",
            warehouse_id=warehouse_id,
            product_id=product_id,
            quantity=quantity,
            total=stock.quantity,
        )
        return stock
