from typing import List, Optional

from fastapi import APIRouter, Depends, status

from db.transfer import StockTransfer as StockTransferModel
from routers.deps import get_transfer_service, current_user_id
from schemas.transfers import TransferCreate, TransferRead, TransferStatusUpdate
from services.transfers import TransferService

router = APIRouter()

EXTERNAL = "External"


def _serialize_transfer(t: StockTransferModel) -> TransferRead:
    src = getattr(t, "from_warehouse", None)
    dst = getattr(t, "to_warehouse", None)
    p = getattr(t, "product", None)
    u = getattr(t, "requester", None)
    return TransferRead(
        id=t.id,
        product_id=t.product_id,
        product_name=p.name if p else None,
        quantity=t.quantity,
        from_warehouse_id=t.from_warehouse_id,
        from_warehouse_name=src.name if src else (t.from_warehouse_name or EXTERNAL),
        to_warehouse_id=t.to_warehouse_id,
        to_warehouse_name=dst.name if dst else (t.to_warehouse_name or EXTERNAL),
        status=t.status,
        reason=t.reason,
        requested_by=t.requested_by,
        requested_by_username=u.username if u else None,
        created_at=t.created_at,
        completed_at=t.completed_at,
    )


@router.get("/", response_model=List[TransferRead])
async def list_transfers(service: TransferService = Depends(get_transfer_service)):
    return [_serialize_transfer(t) for t in await service.list_transfers()]


@router.get("/{transfer_id}", response_model=TransferRead)
async def get_transfer(transfer_id: int, service: TransferService = Depends(get_transfer_service)):
    return _serialize_transfer(await service.get_transfer(transfer_id))


@router.post("/", response_model=TransferRead, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: TransferCreate,
    user_id: int = Depends(current_user_id),
    service: TransferService = Depends(get_transfer_service),
):
    t = await service.create_transfer(
        product_id=payload.product_id,
        quantity=payload.quantity,
        from_warehouse_id=payload.from_warehouse_id,
        to_warehouse_id=payload.to_warehouse_id,
        reason=payload.reason,
        requested_by=user_id,
    )
    return _serialize_transfer(t)


@router.put("/{transfer_id}/status", response_model=TransferRead)
async def update_transfer_status(
    transfer_id: int,
    payload: TransferStatusUpdate,
    service: TransferService = Depends(get_transfer_service),
):
    return _serialize_transfer(await service.update_status(transfer_id, payload.status))


@router.post("/{transfer_id}/process", response_model=TransferRead)
async def process_transfer(transfer_id: int, service: TransferService = Depends(get_transfer_service)):
    return _serialize_transfer(await service.process(transfer_id))
