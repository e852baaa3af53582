from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, field_validator


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int


class OrderCreate(BaseModel):
    items: List[OrderItemCreate]


class OrderStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return (v or "").strip().lower()


class OrderItemRead(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    product_description: Optional[str] = None
    quantity: int
    price: Decimal
    warehouse_id: Optional[int] = None


class OrderRead(BaseModel):
    id: int
    user_id: int
    username: Optional[str] = None
    total_amount: Decimal
    status: str
    created_at: datetime
    items: List[OrderItemRead]
