from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from core.converters import utcnow
from .database import Base

TRANSFER_PENDING = "pending"
TRANSFER_COMPLETED = "completed"
TRANSFER_FAILED = "failed"
TRANSFER_CANCELLED = "cancelled"
TRANSFER_STATUSES = (TRANSFER_PENDING, TRANSFER_COMPLETED, TRANSFER_FAILED, TRANSFER_CANCELLED)
TRANSFER_TERMINAL_STATUSES = (TRANSFER_COMPLETED, TRANSFER_FAILED, TRANSFER_CANCELLED)


class StockTransfer(Base):
    """Move of one product between warehouses.

    A null source is stock arriving from outside the system, a null
    destination is stock leaving it. When an endpoint warehouse is deleted
    its id is cleared and its name kept in the matching ``*_warehouse_name``
    column, so history still shows where the stock went.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_transfers_quantity"),
        CheckConstraint(
            "from_warehouse_id IS NOT NULL OR to_warehouse_id IS NOT NULL"
            " OR from_warehouse_name IS NOT NULL OR to_warehouse_name IS NOT NULL",
            name="ck_stock_transfers_endpoint",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    from_warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True, index=True)
    to_warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="SET NULL"), nullable=True, index=True)
    from_warehouse_name = Column(Text, nullable=True)  # set once the source warehouse is deleted
    to_warehouse_name = Column(Text, nullable=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default=TRANSFER_PENDING, index=True)  # pending|completed|failed|cancelled
    reason = Column(Text, nullable=True)
    requested_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    from_warehouse = relationship("Warehouse", foreign_keys=[from_warehouse_id])
    to_warehouse = relationship("Warehouse", foreign_keys=[to_warehouse_id])
    product = relationship("Product")
    requester = relationship("User")
