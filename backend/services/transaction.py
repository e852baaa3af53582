"""
Transaction boundary and row-locking helpers shared by all services.

Every public service operation runs as exactly one transaction: commit when
the block finishes, roll back on the first exception and re-raise it. Rows
that are about to be read-then-written are fetched with ``FOR UPDATE`` and
held until that transaction ends.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import InventoryError, NotFoundError
from core.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def transaction(
    session_maker: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        try:
            async with session.begin():
                yield session
        except InventoryError as e:
            logger.warning(
                "transaction_rejected",
                operation=operation,
                kind=e.kind.value,
                code=e.code,
                detail=e.detail,
            )
            raise
        except Exception:
            logger.error("transaction_failed", operation=operation, exc_info=True)
            raise


def for_update(stmt: Select, of=None) -> Select:
    # populate_existing: never hand back a stale identity-map copy of a row we just locked
    return stmt.with_for_update(of=of).execution_options(populate_existing=True)


async def lock_one(session: AsyncSession, stmt: Select, of=None):
    res = await session.execute(for_update(stmt, of=of))
    return res.scalar_one_or_none()


async def lock_all(session: AsyncSession, stmt: Select, of=None) -> Sequence:
    res = await session.execute(for_update(stmt, of=of))
    return res.scalars().all()


class TransactionalService:
    """Base for services that own their transactions.

    The session factory is injected so tests (or another process) can point a
    service at a different database without touching module globals.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self.logger = get_logger(self.__class__.__name__)

    def transaction(self, operation: str):
        return transaction(self.session_maker, operation)

    async def _get(self, session: AsyncSession, model, record_id: int, resource: Optional[str] = None):
        obj = await session.get(model, record_id)
        if obj is None:
            raise NotFoundError(resource or model.__name__, record_id)
        return obj
