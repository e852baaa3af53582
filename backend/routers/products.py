from typing import List

from fastapi import APIRouter, Depends, status

from db.product import Product as ProductModel
from routers.deps import get_product_service
from schemas.products import ProductCreate, ProductRead, ProductUpdate
from services.products import ProductService

router = APIRouter()


def _serialize_product(p: ProductModel) -> ProductRead:
    wh = getattr(p, "warehouse", None)
    return ProductRead(
        id=p.id,
        name=p.name,
        description=p.description,
        price=p.price,
        stock=p.stock,
        warehouse_id=p.warehouse_id,
        warehouse_name=wh.name if wh else None,
        created_at=p.created_at,
    )


@router.get("/", response_model=List[ProductRead])
async def list_products(service: ProductService = Depends(get_product_service)):
    return [_serialize_product(p) for p in await service.list_products()]


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(product_id: int, service: ProductService = Depends(get_product_service)):
    return _serialize_product(await service.get_product(product_id))


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductCreate, service: ProductService = Depends(get_product_service)):
    p = await service.create_product(
        name=payload.name,
        description=payload.description,
        price=payload.price,
        stock=payload.stock,
        warehouse_id=payload.warehouse_id,
    )
    return _serialize_product(p)


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    service: ProductService = Depends(get_product_service),
):
    data = payload.model_dump(exclude_unset=True)
    return _serialize_product(await service.update_product(product_id, **data))


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: int, service: ProductService = Depends(get_product_service)):
    await service.delete_product(product_id)
