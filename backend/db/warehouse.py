from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from core.converters import utcnow
from .database import Base


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    stocks = relationship("WarehouseStock", back_populates="warehouse", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


class WarehouseStock(Base):
    """Quantity of one product held at one warehouse (the ledger row)."""
    __tablename__ = "warehouse_stocks"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="ux_warehouse_stocks_warehouse_product"),
        CheckConstraint("quantity >= 0", name="ck_warehouse_stocks_quantity"),
        CheckConstraint("reserved_quantity >= 0", name="ck_warehouse_stocks_reserved"),
        CheckConstraint("quantity >= reserved_quantity", name="ck_warehouse_stocks_available"),
    )

    id = Column(Integer, primary_key=True, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    warehouse = relationship("Warehouse", back_populates="stocks")
    product = relationship("Product", back_populates="stocks")

    @property
    def available(self) -> int:
        return int(self.quantity or 0) - int(self.reserved_quantity or 0)
