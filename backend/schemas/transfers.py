from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class TransferCreate(BaseModel):
    product_id: int
    quantity: int
    from_warehouse_id: Optional[int] = None  # null: stock arriving from outside
    to_warehouse_id: Optional[int] = None  # null: stock leaving the system
    reason: Optional[str] = None


class TransferStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return (v or "").strip().lower()


class TransferRead(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    from_warehouse_id: Optional[int] = None
    from_warehouse_name: str
    to_warehouse_id: Optional[int] = None
    to_warehouse_name: str
    status: str
    reason: Optional[str] = None
    requested_by: Optional[int] = None
    requested_by_username: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
