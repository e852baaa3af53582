from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class StockAdd(BaseModel):
    quantity: int


class StockSet(BaseModel):
    """Absolute on-hand count (e.g. after a physical stock take)."""

    quantity: int


class StockRead(BaseModel):
    id: int
    warehouse_id: int
    warehouse_name: Optional[str] = None
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    reserved_quantity: int
    available: int
    updated_at: Optional[datetime] = None
