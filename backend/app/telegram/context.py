from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.agent.conversation_state import SessionStore
from app.telegram.gateway import TelegramGateway


@dataclass
class BotContext:
    """Everything a handler touches: durable DB session, session store, gateway."""

    db: Session
    sessions: SessionStore
    gateway: TelegramGateway
