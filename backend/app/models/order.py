import uuid

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class OrderStatus:
    """Known order states. The column itself is free text (dashboard override)."""
    PENDING = "pending"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PAID = "paid"
    DELIVERY_DETAILS_RECEIVED = "delivery_details_received"
    PACKED = "packed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"

    # Once paid, a new proof of payment is no longer accepted
    PAID_OR_LATER = (PAID, DELIVERY_DETAILS_RECEIVED, PACKED, OUT_FOR_DELIVERY, DELIVERED)


class Order(Base):
    """
    One buyer order for one product.

    The price is NOT copied here: totals are recomputed from the live product
    price, so editing a price changes what unpaid orders owe.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    buyer_id = Column(String(64), nullable=False, index=True)
    buyer_username = Column(String(255), nullable=True, default="")
    qty = Column(Integer, nullable=False)
    status = Column(String(64), nullable=False, default=OrderStatus.PENDING)
    delivery_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    store = relationship("Store", backref="orders")
    product = relationship("Product")

    def __repr__(self):
        return f"<Order id={self.id} status={self.status}>"
