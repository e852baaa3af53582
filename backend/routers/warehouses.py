from typing import List

from fastapi import APIRouter, Depends, status

from db.warehouse import WarehouseStock as WarehouseStockModel
from routers.deps import get_ledger, get_warehouse_service
from schemas.inventory import StockAdd, StockRead, StockSet
from schemas.warehouses import WarehouseCreate, WarehouseRead, WarehouseUpdate
from services.ledger import StockLedger
from services.warehouses import WarehouseService

router = APIRouter()
stocks_router = APIRouter()


def _serialize_stock(s: WarehouseStockModel) -> StockRead:
    wh = getattr(s, "warehouse", None)
    p = getattr(s, "product", None)
    return StockRead(
        id=s.id,
        warehouse_id=s.warehouse_id,
        warehouse_name=wh.name if wh else None,
        product_id=s.product_id,
        product_name=p.name if p else None,
        quantity=s.quantity,
        reserved_quantity=s.reserved_quantity,
        available=s.available,
        updated_at=s.updated_at,
    )


@router.get("/", response_model=List[WarehouseRead])
async def list_warehouses(service: WarehouseService = Depends(get_warehouse_service)):
    return [WarehouseRead(**w.to_schema) for w in await service.list_warehouses()]


@router.get("/{warehouse_id}", response_model=WarehouseRead)
async def get_warehouse(warehouse_id: int, service: WarehouseService = Depends(get_warehouse_service)):
    return WarehouseRead(**(await service.get_warehouse(warehouse_id)).to_schema)


@router.post("/", response_model=WarehouseRead, status_code=status.HTTP_201_CREATED)
async def create_warehouse(payload: WarehouseCreate, service: WarehouseService = Depends(get_warehouse_service)):
    w = await service.create_warehouse(payload.name, address=payload.address, is_active=payload.is_active)
    return WarehouseRead(**w.to_schema)


@router.patch("/{warehouse_id}", response_model=WarehouseRead)
async def update_warehouse(
    warehouse_id: int,
    payload: WarehouseUpdate,
    service: WarehouseService = Depends(get_warehouse_service),
):
    data = payload.model_dump(exclude_unset=True)
    w = await service.update_warehouse(warehouse_id, **data)
    return WarehouseRead(**w.to_schema)


@router.delete("/{warehouse_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_warehouse(warehouse_id: int, service: WarehouseService = Depends(get_warehouse_service)):
    await service.delete_warehouse(warehouse_id)


# ---- stock per warehouse ----

@router.get("/{warehouse_id}/stocks", response_model=List[StockRead])
async def list_warehouse_stocks(warehouse_id: int, ledger: StockLedger = Depends(get_ledger)):
    return [_serialize_stock(s) for s in await ledger.get_warehouse_stocks(warehouse_id)]


@router.get("/{warehouse_id}/stocks/{product_id}", response_model=StockRead)
async def get_warehouse_product_stock(
    warehouse_id: int,
    product_id: int,
    ledger: StockLedger = Depends(get_ledger),
):
    return _serialize_stock(await ledger.get_product_stock(warehouse_id, product_id))


@router.put("/{warehouse_id}/stocks/{product_id}", response_model=StockRead)
async def set_warehouse_product_stock(
    warehouse_id: int,
    product_id: int,
    payload: StockSet,
    ledger: StockLedger = Depends(get_ledger),
):
    await ledger.set_quantity(warehouse_id, product_id, payload.quantity)
    return _serialize_stock(await ledger.get_product_stock(warehouse_id, product_id))


@router.post("/{warehouse_id}/stocks/{product_id}/add", response_model=StockRead)
async def add_warehouse_product_stock(
    warehouse_id: int,
    product_id: int,
    payload: StockAdd,
    ledger: StockLedger = Depends(get_ledger),
):
    await ledger.add_stock(warehouse_id, product_id, payload.quantity)
    return _serialize_stock(await ledger.get_product_stock(warehouse_id, product_id))


@stocks_router.get("/", response_model=List[StockRead])
async def list_all_stocks(ledger: StockLedger = Depends(get_ledger)):
    return [_serialize_stock(s) for s in await ledger.get_all_stocks()]
