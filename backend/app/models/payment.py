import uuid

from sqlalchemy import Column, String, ForeignKey, Numeric, DateTime, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class PaymentStatus:
    AWAITING = "awaiting"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ProofType:
    PHOTO = "photo"
    DOCUMENT = "document"


class Payment(Base):
    """
    One proof-of-payment submission for an order.

    Status flow: awaiting -> confirmed | rejected (both terminal). A rejected order
    may get a second Payment row when the buyer resubmits. Only status changes
    after insert.
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    store_id = Column(String(36), ForeignKey("stores.id"), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=False)
    buyer_username = Column(String(255), nullable=True, default="")
    amount = Column(Numeric(16, 2), nullable=False)  # holds MAX_PRICE x MAX_QUANTITY
    proof_file_id = Column(String(255), nullable=False)
    proof_type = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=PaymentStatus.AWAITING)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", backref="payments")

    __table_args__ = (
        # At most one awaiting payment per order
        Index(
            "uq_payments_one_awaiting_per_order",
            "order_id",
            unique=True,
            sqlite_where=text("status = 'awaiting'"),
            postgresql_where=text("status = 'awaiting'"),
        ),
    )

    def __repr__(self):
        return f"<Payment id={self.id} order_id={self.order_id} status={self.status}>"
