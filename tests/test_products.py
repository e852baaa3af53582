"""Product catalogue operations and the delete cascade."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import event, func, select

from conftest import assert_ledger_consistent, stock_at
from core.errors import InventoryError, NotFoundError, ValidationError
from db.order import Order, OrderItem
from db.transfer import StockTransfer
from db.warehouse import WarehouseStock


async def _count(session_maker, model, *where):
    async with session_maker() as session:
        res = await session.execute(select(func.count()).select_from(model).where(*where))
        return res.scalar_one()


class TestCreateProduct:
    async def test_initial_stock_lands_in_home_warehouse(self, products, session_maker, wh_a):
        p = await products.create_product(name=" Widget ", price="9.99", stock=7, warehouse_id=wh_a.id)

        assert p.name == "Widget"
        assert p.price == Decimal("9.99")
        assert p.stock == 7
        assert p.warehouse.name == "Central"
        assert await stock_at(session_maker, wh_a.id, p.id) == 7
        await assert_ledger_consistent(session_maker)

    async def test_no_stock_no_row(self, products, session_maker, wh_a):
        p = await products.create_product(name="Widget", price="1", warehouse_id=wh_a.id)
        assert p.stock == 0
        assert await stock_at(session_maker, wh_a.id, p.id) is None

    async def test_stock_needs_a_warehouse(self, products):
        with pytest.raises(ValidationError) as exc:
            await products.create_product(name="Widget", price="1", stock=3)
        assert exc.value.code == "WAREHOUSE_REQUIRED"

    @pytest.mark.parametrize("price", ["-1", "abc"])
    async def test_bad_price(self, products, price):
        with pytest.raises(ValidationError) as exc:
            await products.create_product(name="Widget", price=price)
        assert exc.value.code == "INVALID_PRICE"

    async def test_missing_name(self, products):
        with pytest.raises(ValidationError):
            await products.create_product(name="  ", price="1")


class TestUpdateProduct:
    async def test_partial_update(self, products, wh_a, wh_b, make_product):
        p = await make_product(name="Widget", price="1.00", stock=2, warehouse_id=wh_a.id)

        updated = await products.update_product(p.id, price="3.333", warehouse_id=wh_b.id)

        assert updated.name == "Widget"
        assert updated.price == Decimal("3.33")
        assert updated.warehouse.name == "North"
        assert updated.stock == 2

    async def test_unknown_product(self, products):
        with pytest.raises(NotFoundError):
            await products.update_product(404, name="x")


class TestDeleteProduct:
    async def test_cascade(
        self, products, orders, transfers, session_maker, user, wh_a, wh_b, make_product, line
    ):
        doomed = await make_product(name="Doomed", stock=10, warehouse_id=wh_a.id)
        kept = await make_product(name="Kept", stock=10, warehouse_id=wh_a.id)
        only_doomed = await orders.create_order(user.id, [line(doomed.id, 1)])
        mixed = await orders.create_order(user.id, [line(doomed.id, 1), line(kept.id, 2)])
        await transfers.create_transfer(
            user.id, product_id=doomed.id, quantity=1, from_warehouse_id=wh_a.id, to_warehouse_id=wh_b.id
        )

        await products.delete_product(doomed.id)

        remaining = await orders.list_orders(user.id)
        assert [o.id for o in remaining] == [mixed.id]
        assert [i.product_id for i in remaining[0].items] == [kept.id]
        assert await _count(session_maker, Order, Order.id == only_doomed.id) == 0
        assert await _count(session_maker, OrderItem, OrderItem.product_id == doomed.id) == 0
        assert await _count(session_maker, WarehouseStock, WarehouseStock.product_id == doomed.id) == 0
        assert await _count(session_maker, StockTransfer, StockTransfer.product_id == doomed.id) == 0
        assert await stock_at(session_maker, wh_a.id, kept.id) == 10
        await assert_ledger_consistent(session_maker)

        with pytest.raises(NotFoundError):
            await products.get_product(doomed.id)

    async def test_unknown_product(self, products):
        with pytest.raises(NotFoundError):
            await products.delete_product(404)

    async def test_stock_rows_are_locked_before_the_product(
        self, products, engine, wh_a, make_product
    ):
        p = await make_product(stock=10, warehouse_id=wh_a.id)
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(engine.sync_engine, "before_cursor_execute", record)
        try:
            await products.delete_product(p.id)
        finally:
            event.remove(engine.sync_engine, "before_cursor_execute", record)

        def first(fragment):
            return next(i for i, s in enumerate(statements) if fragment in s)

        assert first("FROM warehouse_stocks") < first("FROM products")

    async def test_delete_racing_a_confirmation_keeps_the_ledger_consistent(
        self, products, orders, session_maker, user, wh_a, make_product, line
    ):
        doomed = await make_product(name="Doomed", stock=10, warehouse_id=wh_a.id)
        kept = await make_product(name="Kept", stock=10, warehouse_id=wh_a.id)
        order = await orders.create_order(user.id, [line(doomed.id, 3), line(kept.id, 2)])

        results = await asyncio.gather(
            products.delete_product(doomed.id),
            orders.update_status(order.id, user.id, "confirmed"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert all(isinstance(f, InventoryError) for f in failures)
        assert await _count(session_maker, WarehouseStock, WarehouseStock.product_id == doomed.id) == 0
        await assert_ledger_consistent(session_maker)
