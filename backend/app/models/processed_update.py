from sqlalchemy import Column, BigInteger, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class ProcessedUpdate(Base):
    """Inbox of Telegram update_ids already handled. Drops webhook redeliveries."""
    __tablename__ = "processed_updates"

    update_id = Column(BigInteger, primary_key=True, autoincrement=False)
    kind = Column(String(16), nullable=False)  # "message" | "callback"
    received_at = Column(DateTime(timezone=True), server_default=func.now())
