from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from core.converters import utcnow
from .database import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)

    # Denormalized sum of warehouse_stocks.quantity, written only by the ledger
    stock = Column(Integer, nullable=False, default=0)

    # Home warehouse: where initial stock is placed
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    warehouse = relationship("Warehouse")
    stocks = relationship("WarehouseStock", back_populates="product", cascade="all, delete-orphan")
