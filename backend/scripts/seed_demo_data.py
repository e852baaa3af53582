import asyncio
import sys
from pathlib import Path
from decimal import Decimal

"""
Seed demo data (users, warehouses, products with stock) into the DB.

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py`
- repo root: `python backend/scripts/seed_demo_data.py`

Running it twice does not duplicate anything.
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core.config import settings
from core.logger import setup_logging
from db.database import create_db_and_tables, get_engine, get_session_maker
from db.product import Product
from db.users import User
from db.warehouse import Warehouse
from services.ledger import StockLedger
from services.products import ProductService
from services.transfers import TransferService
from services.users import UserService
from services.warehouses import WarehouseService


USERS = ["alice", "bob"]

WAREHOUSES = [
    ("Central", "1 Main St"),
    ("North", "200 Harbour Rd"),
    ("South", None),
]

# name, price, initial stock, home warehouse
PRODUCTS = [
    ("Widget", Decimal("9.99"), 50, "Central"),
    ("Gadget", Decimal("24.50"), 20, "Central"),
    ("Doohickey", Decimal("3.25"), 120, "North"),
    ("Sprocket", Decimal("1.10"), 0, "South"),
]


async def get_or_create_user(users: UserService, session_maker, username: str) -> User:
    async with session_maker() as session:
        res = await session.execute(select(User).where(User.username == username))
        user = res.scalar_one_or_none()
    if user:
        return user
    return await users.create_user(username)


async def get_or_create_warehouse(warehouses: WarehouseService, session_maker, name: str, address) -> Warehouse:
    async with session_maker() as session:
        res = await session.execute(select(Warehouse).where(func.lower(Warehouse.name) == name.lower()))
        warehouse = res.scalar_one_or_none()
    if warehouse:
        return warehouse
    return await warehouses.create_warehouse(name, address=address)


async def get_or_create_product(products: ProductService, session_maker, name, price, stock, warehouse_id) -> Product:
    async with session_maker() as session:
        res = await session.execute(select(Product).where(func.lower(Product.name) == name.lower()))
        product = res.scalar_one_or_none()
    if product:
        return product
    return await products.create_product(name=name, price=price, stock=stock, warehouse_id=warehouse_id)


async def main() -> None:
    setup_logging(settings.log_level, settings.log_format)
    engine = get_engine()
    await create_db_and_tables(engine)

    session_maker = get_session_maker()
    ledger = StockLedger(session_maker)
    users = UserService(session_maker)
    warehouses = WarehouseService(session_maker)
    products = ProductService(session_maker, ledger)
    transfers = TransferService(session_maker, ledger)

    seeded_users = [await get_or_create_user(users, session_maker, u) for u in USERS]

    by_name = {}
    for name, address in WAREHOUSES:
        by_name[name] = await get_or_create_warehouse(warehouses, session_maker, name, address)

    created = []
    for name, price, stock, home in PRODUCTS:
        p = await get_or_create_product(products, session_maker, name, price, stock, by_name[home].id)
        created.append(p)

    # One pending transfer so the transfer screens have something to show
    existing = await transfers.list_transfers()
    if not existing:
        await transfers.create_transfer(
            product_id=created[0].id,
            quantity=10,
            from_warehouse_id=by_name["Central"].id,
            to_warehouse_id=by_name["North"].id,
            reason="Rebalance demo stock",
            requested_by=seeded_users[0].id,
        )

    print(f"Users: {len(seeded_users)}, warehouses: {len(by_name)}, products: {len(created)}")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
