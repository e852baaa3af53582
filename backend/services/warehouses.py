from typing import List, Optional

from sqlalchemy import delete, or_, select, update

from core.errors import ConflictingStateError, NotFoundError, ValidationError
from db.order import OrderItem
from db.product import Product
from db.transfer import TRANSFER_PENDING, StockTransfer
from db.warehouse import Warehouse, WarehouseStock
from .transaction import TransactionalService, lock_all, lock_one


class WarehouseService(TransactionalService):

    async def list_warehouses(self) -> List[Warehouse]:
        async with self.transaction("list_warehouses") as session:
            res = await session.execute(select(Warehouse).order_by(Warehouse.id))
            return list(res.scalars().all())

    async def get_warehouse(self, warehouse_id: int) -> Warehouse:
        async with self.transaction("get_warehouse") as session:
            return await self._get(session, Warehouse, warehouse_id)

    async def create_warehouse(self, name: str, address: Optional[str] = None, is_active: bool = True) -> Warehouse:
        name = (name or "").strip()
        if not name:
            raise ValidationError("MISSING_NAME", "name is required")

        async with self.transaction("create_warehouse") as session:
            warehouse = Warehouse(name=name, address=address, is_active=bool(is_active))
            session.add(warehouse)
            await session.flush()

        self.logger.info("warehouse_created", warehouse_id=warehouse.id, name=name)
        return warehouse

    async def update_warehouse(self, warehouse_id: int, **changes) -> Warehouse:
        async with self.transaction("update_warehouse") as session:
            warehouse = await lock_one(session, select(Warehouse).where(Warehouse.id == warehouse_id))
            if warehouse is None:
                raise NotFoundError("Warehouse", warehouse_id)

            if changes.get("name") is not None:
                name = changes["name"].strip()
                if not name:
                    raise ValidationError("MISSING_NAME", "name cannot be empty")
                warehouse.name = name
            if "address" in changes:
                warehouse.address = changes["address"]
            if changes.get("is_active") is not None:
                warehouse.is_active = bool(changes["is_active"])
            await session.flush()

        self.logger.info("warehouse_updated", warehouse_id=warehouse_id, fields=sorted(changes))
        return warehouse

    async def delete_warehouse(self, warehouse_id: int) -> None:
        """Delete an empty warehouse.

        Refused while any of its stock rows holds quantity or a pending
        transfer still points at it. Finished transfers keep the warehouse
        name in place of the id; other references are cleared.
        """
        async with self.transaction("delete_warehouse") as session:
            warehouse = await lock_one(session, select(Warehouse).where(Warehouse.id == warehouse_id))
            if warehouse is None:
                raise NotFoundError("Warehouse", warehouse_id)

            stocks = await lock_all(
                session,
                select(WarehouseStock)
                .where(WarehouseStock.warehouse_id == warehouse_id)
                .order_by(WarehouseStock.product_id),
            )
            held = [s for s in stocks if s.quantity > 0]
            if held:
                raise ConflictingStateError(
                    "WAREHOUSE_HAS_STOCK",
                    "Warehouse still holds stock",
                    warehouse_id=warehouse_id,
                    products=[s.product_id for s in held],
                )

            references = or_(
                StockTransfer.from_warehouse_id == warehouse_id,
                StockTransfer.to_warehouse_id == warehouse_id,
            )
            res = await session.execute(
                select(StockTransfer.id).where(references, StockTransfer.status == TRANSFER_PENDING)
            )
            pending = [r[0] for r in res.all()]
            if pending:
                raise ConflictingStateError(
                    "WAREHOUSE_HAS_PENDING_TRANSFERS",
                    "Warehouse is referenced by pending transfers",
                    warehouse_id=warehouse_id,
                    transfers=pending,
                )

            await session.execute(
                update(StockTransfer)
                .where(StockTransfer.from_warehouse_id == warehouse_id)
                .values(from_warehouse_id=None, from_warehouse_name=warehouse.name)
            )
            await session.execute(
                update(StockTransfer)
                .where(StockTransfer.to_warehouse_id == warehouse_id)
                .values(to_warehouse_id=None, to_warehouse_name=warehouse.name)
            )
            await session.execute(
                update(Product).where(Product.warehouse_id == warehouse_id).values(warehouse_id=None)
            )
            await session.execute(
                update(OrderItem).where(OrderItem.warehouse_id == warehouse_id).values(warehouse_id=None)
            )
            await session.execute(delete(WarehouseStock).where(WarehouseStock.warehouse_id == warehouse_id))
            await session.execute(delete(Warehouse).where(Warehouse.id == warehouse_id))

        self.logger.info("warehouse_deleted", warehouse_id=warehouse_id, empty_rows_removed=len(stocks))
