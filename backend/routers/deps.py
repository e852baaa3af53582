from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.database import get_session_maker
from services.ledger import StockLedger
from services.orders import OrderService
from services.products import ProductService
from services.transfers import TransferService
from services.users import UserService
from services.warehouses import WarehouseService


def get_ledger(session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker)) -> StockLedger:
    return StockLedger(session_maker)


def get_order_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    ledger: StockLedger = Depends(get_ledger),
) -> OrderService:
    return OrderService(session_maker, ledger)


def get_transfer_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    ledger: StockLedger = Depends(get_ledger),
) -> TransferService:
    return TransferService(session_maker, ledger)


def get_product_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    ledger: StockLedger = Depends(get_ledger),
) -> ProductService:
    return ProductService(session_maker, ledger)


def get_warehouse_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> WarehouseService:
    return WarehouseService(session_maker)


def get_user_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> UserService:
    return UserService(session_maker)


async def current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    # Authentication happens upstream; the gateway forwards the user id.
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id
