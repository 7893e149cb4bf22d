import uuid

from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
from app.db.base import Base


class SubscriptionStatus:
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


class Store(Base):
    """
    A merchant's store. Owned by one Telegram user.

    owner_token is the dashboard bearer credential. channel_id stays NULL until
    the owner links a broadcast channel. Rows are never hard-deleted.
    """
    __tablename__ = "stores"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(64), nullable=False, index=True)  # Telegram user id
    owner_token = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    currency = Column(String(8), nullable=False, default="₦")
    delivery_note = Column(Text, nullable=True)
    channel_id = Column(String(64), nullable=True)
    channel_username = Column(String(255), nullable=True)
    # Payout details shown to buyers
    bank_name = Column(String(255), nullable=True)
    account_number = Column(String(32), nullable=True)
    account_name = Column(String(255), nullable=True)
    # NULL on legacy rows; backfilled by ensure_subscription_defaults()
    subscription_status = Column(String(16), nullable=True)
    subscription_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def has_bank_details(self) -> bool:
        return bool(self.bank_name and self.account_number and self.account_name)

    def __repr__(self):
        return f"<Store id={self.id} owner_id={self.owner_id} name={self.name!r}>"
