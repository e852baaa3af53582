from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from core.converters import utcnow
from .database import Base


class User(Base):
    """Order owner / transfer requester. Credentials live with the auth service."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    orders = relationship("Order", back_populates="user", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "username": self.username,
            "is_active": self.is_active,
        }
