"""Database sessions for the durable store and the conversation-state store."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import settings


def make_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite: Use NullPool for thread-safety
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
        )
    # PostgreSQL/MySQL: Use QueuePool with sensible defaults
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

session_engine = make_engine(settings.SESSION_DATABASE_URL)
ConversationSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=session_engine)
