from typing import List

from fastapi import APIRouter, Depends, status

from db.order import Order as OrderModel
from routers.deps import current_user_id, get_order_service
from schemas.orders import OrderCreate, OrderItemRead, OrderRead, OrderStatusUpdate
from services.orders import OrderService

router = APIRouter()


def _serialize_order(o: OrderModel) -> OrderRead:
    items_out: List[OrderItemRead] = []
    for it in (o.items or []):
        p = getattr(it, "product", None)
        items_out.append(
            OrderItemRead(
                id=it.id,
                product_id=it.product_id,
                product_name=p.name if p else None,
                product_description=p.description if p else None,
                quantity=it.quantity,
                price=it.price,
                warehouse_id=it.warehouse_id,
            )
        )
    user = getattr(o, "user", None)
    return OrderRead(
        id=o.id,
        user_id=o.user_id,
        username=user.username if user else None,
        total_amount=o.total_amount,
        status=o.status,
        created_at=o.created_at,
        items=items_out,
    )


@router.get("/", response_model=List[OrderRead])
async def list_orders(
    user_id: int = Depends(current_user_id),
    service: OrderService = Depends(get_order_service),
):
    return [_serialize_order(o) for o in await service.list_orders(user_id)]


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int,
    user_id: int = Depends(current_user_id),
    service: OrderService = Depends(get_order_service),
):
    return _serialize_order(await service.get_order(order_id, user_id))


@router.post("/", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    user_id: int = Depends(current_user_id),
    service: OrderService = Depends(get_order_service),
):
    return _serialize_order(await service.create_order(user_id, payload.items))


@router.put("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    user_id: int = Depends(current_user_id),
    service: OrderService = Depends(get_order_service),
):
    return _serialize_order(await service.update_status(order_id, user_id, payload.status))


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: int,
    user_id: int = Depends(current_user_id),
    service: OrderService = Depends(get_order_service),
):
    await service.delete_order(order_id, user_id)
