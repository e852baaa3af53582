from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import select

from db.database import build_engine, build_session_maker, create_db_and_tables
from db.product import Product
from db.warehouse import WarehouseStock
from services.allocation import MostAvailablePolicy
from services.ledger import StockLedger
from services.orders import OrderService
from services.products import ProductService
from services.transfers import TransferService
from services.users import UserService
from services.warehouses import WarehouseService


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def ledger(session_maker):
    return StockLedger(session_maker, policy=MostAvailablePolicy())


@pytest.fixture
def orders(session_maker, ledger):
    return OrderService(session_maker, ledger)


@pytest.fixture
def transfers(session_maker, ledger):
    return TransferService(session_maker, ledger)


@pytest.fixture
def products(session_maker, ledger):
    return ProductService(session_maker, ledger)


@pytest.fixture
def warehouses(session_maker):
    return WarehouseService(session_maker)


@pytest.fixture
def users(session_maker):
    return UserService(session_maker)


@pytest.fixture
async def user(users):
    return await users.create_user("alice")


@pytest.fixture
async def other_user(users):
    return await users.create_user("bob")


@pytest.fixture
async def wh_a(warehouses):
    return await warehouses.create_warehouse("Central", address="1 Main St")


@pytest.fixture
async def wh_b(warehouses):
    return await warehouses.create_warehouse("North")


@pytest.fixture
def make_product(products):
    async def _make(name="Widget", price="10.00", stock=0, warehouse_id=None):
        return await products.create_product(
            name=name, price=Decimal(price), stock=stock, warehouse_id=warehouse_id
        )

    return _make


class Line:
    def __init__(self, product_id, quantity):
        self.product_id = product_id
        self.quantity = quantity


@pytest.fixture
def line():
    return Line


async def stock_at(session_maker, warehouse_id: int, product_id: int) -> Optional[int]:
    async with session_maker() as session:
        res = await session.execute(
            select(WarehouseStock.quantity).where(
                WarehouseStock.warehouse_id == warehouse_id,
                WarehouseStock.product_id == product_id,
            )
        )
        return res.scalar_one_or_none()


async def product_stock(session_maker, product_id: int) -> int:
    async with session_maker() as session:
        res = await session.execute(select(Product.stock).where(Product.id == product_id))
        return res.scalar_one()


async def assert_ledger_consistent(session_maker) -> None:
    """products.stock equals the sum of its rows and nothing is oversold."""
    async with session_maker() as session:
        stocks = (await session.execute(select(WarehouseStock))).scalars().all()
        prods = (await session.execute(select(Product))).scalars().all()

    totals = {}
    for s in stocks:
        assert s.quantity >= 0
        assert 0 <= s.reserved_quantity <= s.quantity
        totals[s.product_id] = totals.get(s.product_id, 0) + s.quantity
    for p in prods:
        assert p.stock == totals.get(p.id, 0), f"product {p.id}: stock={p.stock} rows={totals.get(p.id, 0)}"
