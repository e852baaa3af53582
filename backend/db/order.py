from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from core.converters import utcnow
from .database import Base

ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_CANCELLED = "cancelled"
ORDER_STATUSES = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_CANCELLED)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(Text, nullable=False, default=ORDER_PENDING, index=True)  # pending|confirmed|cancelled
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)

    # Unit price at the time the order was placed
    price = Column(Numeric(12, 2), nullable=False)

    # Where the stock was taken from while the order is confirmed; restores go back here
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    warehouse = relationship("Warehouse")
