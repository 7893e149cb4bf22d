"""
Conversation State Model: ephemeral per-user cursor for multi-step chat flows.

Lives in its own database (SESSION_DATABASE_URL). It holds no entity status,
only the current step and the input collected so far, so wiping it only makes
users restart an in-progress dialog.
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import SessionBase


class ConversationState(SessionBase):
    """
    Schema:
        user_id: Telegram user identifier (unique)
        step: Current flow step (e.g. "product:price", "pay:proof")
        payload: JSON blob with data collected by the flow so far
        expires_at: Row is treated as absent after this instant
    """
    __tablename__ = "conversation_states"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    step = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=True, default=dict)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ConversationState user_id={self.user_id} step={self.step}>"
