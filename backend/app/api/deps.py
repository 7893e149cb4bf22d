"""FastAPI dependencies: DB session, the authenticated store, and the bot handles.

SECURITY: The dashboard token is the store's owner_token. Accepted from:
1. Authorization: Bearer header (for API clients)
2. ?token= query parameter (the link the bot sends)
Header takes precedence.
"""
from typing import Generator, Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.agent.conversation_state import SessionStore
from app.core.exceptions import Unauthorized
from app.db.session import SessionLocal
from app.models.store import Store
from app.services.store_service import get_store_by_token
from app.services.subscription import ensure_subscription_defaults
from app.telegram import bot as telegram_bot
from app.telegram.gateway import TelegramGateway

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_store(
    token: Optional[str] = Query(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Store:
    """Resolve the owner token to its store, backfilling subscription defaults."""
    value = credentials.credentials if credentials else token
    if not value:
        raise Unauthorized(reason="no token")

    store = get_store_by_token(db, value.strip())
    if not store:
        raise Unauthorized(reason="unknown token")
    return ensure_subscription_defaults(db, store)


def get_gateway() -> TelegramGateway:
    return telegram_bot.get_gateway()


def get_sessions() -> SessionStore:
    return telegram_bot.get_session_store()
