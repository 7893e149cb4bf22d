"""Create all tables. Run on app startup."""
import logging

from app.db.base import Base, SessionBase
from app.db.session import engine, session_engine
from app.models import store, product, order, payment, processed_update, conversation_state  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db():
    Base.metadata.create_all(bind=engine)
    SessionBase.metadata.create_all(bind=session_engine)
    logger.info(
        f"[DB] Tables ready: durable={sorted(Base.metadata.tables)}, "
        f"sessions={sorted(SessionBase.metadata.tables)}"
    )
