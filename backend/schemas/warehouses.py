from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class WarehouseCreate(BaseModel):
    name: str
    address: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()


class WarehouseUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class WarehouseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: Optional[str] = None
    is_active: bool
    created_at: datetime
