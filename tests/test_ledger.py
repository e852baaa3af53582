"""Stock ledger: availability checks, increments/decrements and stock administration."""

import pytest
from sqlalchemy import select

from conftest import assert_ledger_consistent, product_stock, stock_at
from core.config import settings
from core.errors import (
    ConflictingStateError,
    ErrorKind,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from db.warehouse import WarehouseStock
from services.allocation import OldestWarehouseFirstPolicy, get_policy, policy_from_settings
from services.ledger import StockLedger


class TestCheckAvailability:
    async def test_picks_warehouse_with_most_available(self, ledger, session_maker, wh_a, wh_b, make_product):
        p = await make_product(stock=5, warehouse_id=wh_a.id)
        await ledger.add_stock(wh_b.id, p.id, 9)

        async with session_maker() as session:
            location = await ledger.check_availability(session, p.id, 4)

        assert location.warehouse_id == wh_b.id
        assert location.available == 9

    async def test_single_location_must_cover_quantity(self, ledger, session_maker, wh_a, wh_b, make_product):
        p = await make_product(stock=5, warehouse_id=wh_a.id)
        await ledger.add_stock(wh_b.id, p.id, 5)

        async with session_maker() as session:
            with pytest.raises(InsufficientStockError) as exc:
                await ledger.check_availability(session, p.id, 8)

        assert exc.value.kind == ErrorKind.INSUFFICIENT_STOCK
        assert exc.value.required == 8
        assert exc.value.available == 5

    async def test_no_stock_rows_reports_zero_available(self, ledger, session_maker, make_product):
        p = await make_product()

        async with session_maker() as session:
            with pytest.raises(InsufficientStockError) as exc:
                await ledger.check_availability(session, p.id, 1)

        assert exc.value.available == 0
        assert exc.value.warehouse_id is None

    async def test_reserved_quantity_is_not_available(self, ledger, session_maker, wh_a, make_product):
        p = await make_product(stock=10, warehouse_id=wh_a.id)
        async with session_maker() as session:
            async with session.begin():
                row = (
                    await session.execute(select(WarehouseStock).where(WarehouseStock.product_id == p.id))
                ).scalar_one()
                row.reserved_quantity = 7

        async with session_maker() as session:
            with pytest.raises(InsufficientStockError) as exc:
                await ledger.check_availability(session, p.id, 4)
        assert exc.value.available == 3

    async def test_inactive_warehouses_are_skipped(self, ledger, warehouses, session_maker, wh_a, wh_b, make_product):
        p = await make_product(stock=3, warehouse_id=wh_a.id)
        await ledger.add_stock(wh_b.id, p.id, 20)
        await warehouses.update_warehouse(wh_b.id, is_active=False)

        async with session_maker() as session:
            location = await ledger.check_availability(session, p.id, 2)
        assert location.warehouse_id == wh_a.id

    async def test_non_positive_quantity_rejected(self, ledger, session_maker, make_product):
        p = await make_product()
        async with session_maker() as session:
            with pytest.raises(ValidationError):
                await ledger.check_availability(session, p.id, 0)


class TestAllocationPolicy:
    async def test_oldest_warehouse_first(self, session_maker, wh_a, wh_b, make_product):
        ledger = StockLedger(session_maker, policy=OldestWarehouseFirstPolicy())
        p = await make_product(stock=5, warehouse_id=wh_a.id)
        await ledger.add_stock(wh_b.id, p.id, 50)

        async with session_maker() as session:
            location = await ledger.check_availability(session, p.id, 5)
        assert location.warehouse_id == wh_a.id

    def test_unknown_policy(self):
        with pytest.raises(ValidationError) as exc:
            get_policy("cheapest_shipping")
        assert exc.value.code == "UNKNOWN_ALLOCATION_POLICY"

    def test_policy_names(self):
        assert get_policy("most_available").name == "most_available"
        assert get_policy(" Oldest_Warehouse ").name == "oldest_warehouse"

    def test_policy_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "allocation_policy", "oldest_warehouse")
        assert policy_from_settings().name == "oldest_warehouse"

    def test_misconfigured_policy_fails_at_construction(self, session_maker, monkeypatch):
        monkeypatch.setattr(settings, "allocation_policy", "bogus")
        with pytest.raises(RuntimeError, match="ALLOCATION_POLICY"):
            StockLedger(session_maker)


class TestIncreaseDecrease:
    async def test_decrease_updates_row_and_product(self, ledger, session_maker, wh_a, make_product):
        p = await make_product(stock=10, warehouse_id=wh_a.id)

        async with session_maker() as session:
            async with session.begin():
                await ledger.decrease(session, p.id, wh_a.id, 4)

        assert await stock_at(session_maker, wh_a.id, p.id) == 6
        assert await product_stock(session_maker, p.id) == 6
        await assert_ledger_consistent(session_maker)

    async def test_decrease_without_row_is_insufficient(self, ledger, session_maker, wh_a, wh_b, make_product):
        p = await make_product(stock=10, warehouse_id=wh_a.id)

        async with session_maker() as session:
            with pytest.raises(InsufficientStockError) as exc:
                async with session.begin():
                    await ledger.decrease(session, p.id, wh_b.id, 1)

        assert exc.value.available == 0
        assert exc.value.warehouse_id == wh_b.id
        assert await stock_at(session_maker, wh_b.id, p.id) is None

    async def test_decrease_never_goes_negative(self, ledger, session_maker, wh_a, make_product):
        p = await make_product(stock=2, warehouse_id=wh_a.id)

        async with session_maker() as session:
            with pytest.raises(InsufficientStockError):
                async with session.begin():
                    await ledger.decrease(session, p.id, wh_a.id, 3)

        assert await stock_at(session_maker, wh_a.id, p.id) == 2
        await assert_ledger_consistent(session_maker)

    async def test_increase_creates_missing_row(self, ledger, session_maker, wh_a, wh_b, make_product):
        p = await make_product(stock=1, warehouse_id=wh_a.id)

        async with session_maker() as session:
            async with session.begin():
                await ledger.increase(session, p.id, wh_b.id, 7)

        assert await stock_at(session_maker, wh_b.id, p.id) == 7
        assert await product_stock(session_maker, p.id) == 8
        await assert_ledger_consistent(session_maker)


class TestStockAdministration:
    async def test_set_quantity_applies_delta_to_product(self, ledger, session_maker, wh_a, wh_b, make_product):
        p = await make_product(stock=10, warehouse_id=wh_a.id)
        await ledger.add_stock(wh_b.id, p.id, 5)

        stock = await ledger.set_quantity(wh_a.id, p.id, 4)

        assert stock.quantity == 4
        assert await product_stock(session_maker, p.id) == 9
        await assert_ledger_consistent(session_maker)

    async def test_set_quantity_below_reserved(self, ledger, session_maker, wh_a, make_product):
        p = await make_product(stock=10, warehouse_id=wh_a.id)
        async with session_maker() as session:
            async with session.begin():
                row = (
                    await session.execute(select(WarehouseStock).where(WarehouseStock.product_id == p.id))
                ).scalar_one()
                row.reserved_quantity = 6

        with pytest.raises(ConflictingStateError) as exc:
            await ledger.set_quantity(wh_a.id, p.id, 5)
        assert exc.value.code == "QUANTITY_BELOW_RESERVED"
        assert await stock_at(session_maker, wh_a.id, p.id) == 10

    async def test_set_quantity_negative(self, ledger, wh_a, make_product):
        p = await make_product()
        with pytest.raises(ValidationError):
            await ledger.set_quantity(wh_a.id, p.id, -1)

    async def test_add_stock(self, ledger, session_maker, wh_a, make_product):
        p = await make_product(stock=3, warehouse_id=wh_a.id)
        stock = await ledger.add_stock(wh_a.id, p.id, 2)
        assert stock.quantity == 5
        assert await product_stock(session_maker, p.id) == 5

    async def test_add_stock_unknown_warehouse(self, ledger, make_product):
        p = await make_product()
        with pytest.raises(NotFoundError) as exc:
            await ledger.add_stock(999, p.id, 2)
        assert exc.value.code == "WAREHOUSE_NOT_FOUND"

    async def test_listings(self, ledger, wh_a, wh_b, make_product):
        widget = await make_product(name="Widget", stock=3, warehouse_id=wh_a.id)
        gadget = await make_product(name="Gadget", stock=4, warehouse_id=wh_a.id)
        await ledger.add_stock(wh_b.id, widget.id, 1)

        in_a = await ledger.get_warehouse_stocks(wh_a.id)
        assert [s.product.name for s in in_a] == ["Gadget", "Widget"]

        everything = await ledger.get_all_stocks()
        assert [(s.warehouse.name, s.product.name) for s in everything] == [
            ("Central", "Gadget"),
            ("Central", "Widget"),
            ("North", "Widget"),
        ]

        one = await ledger.get_product_stock(wh_a.id, gadget.id)
        assert one.quantity == 4

        with pytest.raises(NotFoundError):
            await ledger.get_product_stock(wh_b.id, gadget.id)
