import uuid

from sqlalchemy import Column, String, ForeignKey, Numeric, Boolean, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class Product(Base):
    """
    A listed product. "Out of stock" replaces deletion, so rows are never removed.
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    description = Column(Text, nullable=True, default="")
    in_stock = Column(Boolean, nullable=False, default=True)
    photo_file_id = Column(String(255), nullable=True)  # Telegram file_id
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    store = relationship("Store", backref="products")
