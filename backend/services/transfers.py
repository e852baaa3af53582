"""
Stock transfers between warehouses.

A transfer is requested in ``pending`` and later processed. Processing is one
transaction: decrement the source, increment the destination, mark the
transfer ``completed``. If any step fails nothing is applied and the transfer
stays ``pending``.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.converters import utcnow
from core.errors import InvalidTransitionError, NotFoundError, ValidationError
from db.product import Product
from db.transfer import (
    TRANSFER_COMPLETED,
    TRANSFER_PENDING,
    TRANSFER_STATUSES,
    TRANSFER_TERMINAL_STATUSES,
    StockTransfer,
)
from db.users import User
from db.warehouse import Warehouse
from .transaction import TransactionalService, lock_one


def _transfer_query():
    return select(StockTransfer).options(
        selectinload(StockTransfer.from_warehouse),
        selectinload(StockTransfer.to_warehouse),
        selectinload(StockTransfer.product),
        selectinload(StockTransfer.requester),
    )


def normalize_transfer_status(status: str) -> str:
    s = (status or "").strip().lower()
    if s not in TRANSFER_STATUSES:
        raise ValidationError(
            "INVALID_STATUS",
            f"Invalid status {status!r}; expected one of {list(TRANSFER_STATUSES)}",
        )
    return s


class TransferService(TransactionalService):

    def __init__(self, session_maker, ledger):
        super().__init__(session_maker)
        self.ledger = ledger

    async def create_transfer(
        self,
        requested_by: int,
        product_id: int,
        quantity: int,
        from_warehouse_id: Optional[int] = None,
        to_warehouse_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> StockTransfer:
        """Record a pending transfer requested by user ``requested_by``; no stock moves yet."""
        if from_warehouse_id is None and to_warehouse_id is None:
            raise ValidationError(
                "TRANSFER_WITHOUT_ENDPOINTS",
                "A transfer needs a source warehouse, a destination warehouse, or both",
            )
        if from_warehouse_id is not None and from_warehouse_id == to_warehouse_id:
            raise ValidationError(
                "TRANSFER_SAME_WAREHOUSE",
                "Source and destination warehouse must differ",
            )
        if quantity is None or int(quantity) <= 0:
            raise ValidationError("INVALID_QUANTITY", "quantity must be > 0")

        async with self.transaction("create_transfer") as session:
            await self._get(session, Product, product_id)
            for warehouse_id in (from_warehouse_id, to_warehouse_id):
                if warehouse_id is not None:
                    await self._get(session, Warehouse, warehouse_id)
            await self._get(session, User, requested_by)

            transfer = StockTransfer(
                product_id=product_id,
                quantity=int(quantity),
                from_warehouse_id=from_warehouse_id,
                to_warehouse_id=to_warehouse_id,
                reason=(reason or "").strip() or None,
                requested_by=requested_by,
                status=TRANSFER_PENDING,
            )
            session.add(transfer)
            await session.flush()
            transfer = await self._load(session, transfer.id)

        self.logger.info(
            "transfer_created",
            transfer_id=transfer.id,
            product_id=product_id,
            quantity=transfer.quantity,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
        )
        return transfer

    async def list_transfers(self) -> List[StockTransfer]:
        async with self.transaction("list_transfers") as session:
            res = await session.execute(
                _transfer_query().order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc())
            )
            return list(res.scalars().all())

    async def get_transfer(self, transfer_id: int) -> StockTransfer:
        async with self.transaction("get_transfer") as session:
            res = await session.execute(_transfer_query().where(StockTransfer.id == transfer_id))
            transfer = res.scalar_one_or_none()
            if transfer is None:
                raise NotFoundError("Transfer", transfer_id)
            return transfer

    async def process(self, transfer_id: int) -> StockTransfer:
        """Apply a pending transfer to the ledger."""
        async with self.transaction("process_transfer") as session:
            transfer = await self._lock(session, transfer_id)
            if transfer.status != TRANSFER_PENDING:
                raise InvalidTransitionError(
                    "TRANSFER_NOT_PENDING",
                    transfer.status,
                    TRANSFER_COMPLETED,
                    detail="Transfer is not in pending status",
                )
            await self._complete(session, transfer)
            transfer = await self._load(session, transfer_id)

        self._log_completed(transfer)
        return transfer

    async def update_status(self, transfer_id: int, status: str) -> StockTransfer:
        status = normalize_transfer_status(status)

        async with self.transaction("update_transfer_status") as session:
            transfer = await self._lock(session, transfer_id)
            current = transfer.status
            if current == status:
                return await self._load(session, transfer_id)
            if current in TRANSFER_TERMINAL_STATUSES:
                raise InvalidTransitionError(
                    "TRANSFER_NOT_PENDING",
                    current,
                    status,
                    detail=f"Transfer is already {current}",
                )

            if status == TRANSFER_COMPLETED:
                await self._complete(session, transfer)
            else:
                transfer.status = status
                transfer.completed_at = utcnow()
                await session.flush()
            transfer = await self._load(session, transfer_id)

        if status == TRANSFER_COMPLETED:
            self._log_completed(transfer)
        else:
            self.logger.info("transfer_status_changed", transfer_id=transfer_id, from_status=current, to_status=status)
        return transfer

    # ------------------------------------------------------------------

    async def _complete(self, session: AsyncSession, transfer: StockTransfer) -> None:
        product_id = transfer.product_id
        # both ends locked up front, lowest warehouse id first
        await self.ledger.lock_stocks(session, product_id, [transfer.from_warehouse_id, transfer.to_warehouse_id])

        if transfer.from_warehouse_id is not None:
            await self.ledger.decrease(session, product_id, transfer.from_warehouse_id, transfer.quantity)
        if transfer.to_warehouse_id is not None:
            await self.ledger.increase(session, product_id, transfer.to_warehouse_id, transfer.quantity)

        transfer.status = TRANSFER_COMPLETED
        transfer.completed_at = utcnow()
        await session.flush()

    async def _lock(self, session: AsyncSession, transfer_id: int) -> StockTransfer:
        transfer = await lock_one(session, select(StockTransfer).where(StockTransfer.id == transfer_id))
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        return transfer

    async def _load(self, session: AsyncSession, transfer_id: int) -> StockTransfer:
        res = await session.execute(
            _transfer_query()
            .where(StockTransfer.id == transfer_id)
            .execution_options(populate_existing=True)
        )
        return res.scalar_one()

    def _log_completed(self, transfer: StockTransfer) -> None:
        self.logger.info(
            "transfer_completed",
            transfer_id=transfer.id,
            product_id=transfer.product_id,
            quantity=transfer.quantity,
            from_warehouse_id=transfer.from_warehouse_id,
            to_warehouse_id=transfer.to_warehouse_id,
        )
