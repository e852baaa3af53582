from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator


class ProductCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int = 0
    warehouse_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()


class ProductUpdate(BaseModel):
    """Partial update. ``stock`` is deliberately absent: it moves only through stock operations."""

    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    warehouse_id: Optional[int] = None


class ProductRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int
    warehouse_id: Optional[int] = None
    warehouse_name: Optional[str] = None
    created_at: datetime
