"""
Shared fixtures: throwaway SQLite databases, a recording Telegram gateway and
builders for inbound events.

The environment is pinned before any app module is imported so the tests never
talk to Telegram or pick up a developer's .env values.
"""
import itertools
import os

os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_WEBHOOK_SECRET"] = ""
os.environ["WEBHOOK_BASE_URL"] = ""
os.environ["BOT_USERNAME"] = ""
os.environ["SUPPORT_USERNAME"] = "orderlyysupport"
os.environ["APP_BASE_URL"] = "https://dash.example.com"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.agent.conversation_state import SessionStore
from app.core.exceptions import UpstreamUnavailable
from app.db.base import Base, SessionBase
from app.models import ConversationState, Order, Payment, ProcessedUpdate, Product, Store  # noqa: F401
from app.services import store_service
from app.telegram.context import BotContext
from app.telegram.events import InboundCallback, InboundMessage
from app.telegram.gateway import ChatRef

SELLER_ID = 100
BUYER_ID = 200
OTHER_ID = 300


# ==============================================================================
# DATABASES
# ==============================================================================

def _sqlite_engine(path):
    # File-backed so every Session gets its own connection, as in production
    return create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )


@pytest.fixture
def db_factory(tmp_path):
    engine = _sqlite_engine(tmp_path / "orderlyy.db")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_factory):
    session = db_factory()
    yield session
    session.close()


@pytest.fixture
def session_factory(tmp_path):
    engine = _sqlite_engine(tmp_path / "sessions.db")
    SessionBase.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def sessions(session_factory):
    return SessionStore(session_factory, ttl_seconds=1800)


# ==============================================================================
# TELEGRAM
# ==============================================================================

class FakeGateway:
    """Records outbound calls instead of talking to Telegram."""

    def __init__(self):
        self.sent = []
        self.answered = []
        self.chats = {}
        self.members = {}
        self.bot_id = 999
        self.fail_sends = False
        self.unreachable = set()

    async def send_text(self, chat_id, text, reply_markup=None):
        if self.fail_sends or str(chat_id) in self.unreachable:
            raise UpstreamUnavailable(reason="fake outage")
        self.sent.append({"kind": "text", "chat_id": str(chat_id), "text": text, "markup": reply_markup})

    async def send_photo(self, chat_id, photo, caption, reply_markup=None):
        if self.fail_sends or str(chat_id) in self.unreachable:
            raise UpstreamUnavailable(reason="fake outage")
        self.sent.append(
            {"kind": "photo", "chat_id": str(chat_id), "photo": photo, "text": caption, "markup": reply_markup}
        )

    async def answer_callback(self, callback_id):
        self.answered.append(callback_id)

    async def resolve_chat(self, ref):
        if str(ref) not in self.chats:
            raise UpstreamUnavailable(reason=f"chat {ref} not found")
        return self.chats[str(ref)]

    async def member_status(self, chat_id, user_id):
        return self.members.get((str(chat_id), str(user_id)), "left")

    async def bot_user_id(self):
        return self.bot_id

    # helpers for assertions
    def to(self, chat_id):
        return [m for m in self.sent if m["chat_id"] == str(chat_id)]

    def last_to(self, chat_id):
        messages = self.to(chat_id)
        return messages[-1] if messages else None

    def add_channel(self, chat_id, username, admins=(), bot_admin=True):
        ref = ChatRef(id=str(chat_id), username=username)
        self.chats[f"@{username}"] = ref
        self.chats[str(chat_id)] = ref
        for user_id in admins:
            self.members[(str(chat_id), str(user_id))] = "administrator"
        if bot_admin:
            self.members[(str(chat_id), str(self.bot_id))] = "administrator"


def buttons(message):
    """callback_data (or url) of every inline button in a recorded message."""
    markup = message["markup"]
    if markup is None:
        return []
    return [b.callback_data or b.url for row in markup.inline_keyboard for b in row]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def ctx(db, sessions, gateway):
    return BotContext(db=db, sessions=sessions, gateway=gateway)


_update_ids = itertools.count(1)


def message(user_id, text="", photo=None, document=None, forward_chat_id=None, username=None):
    # Telegram marks a leading "/name" with a bot_command entity
    command, command_args = "", ""
    if text.startswith("/"):
        head, _, rest = text.partition(" ")
        command, command_args = head[1:].split("@", 1)[0].lower(), rest.strip()
    return InboundMessage(
        update_id=next(_update_ids),
        chat_id=user_id,
        user_id=user_id,
        username=username if username is not None else f"user{user_id}",
        text=text,
        photo_file_id=photo,
        document_file_id=document,
        forward_chat_id=forward_chat_id,
        command=command,
        command_args=command_args,
    )


def callback(user_id, data, username=None):
    update_id = next(_update_ids)
    return InboundCallback(
        update_id=update_id,
        callback_id=f"cb-{update_id}",
        chat_id=user_id,
        user_id=user_id,
        username=username if username is not None else f"user{user_id}",
        data=data,
    )


# ==============================================================================
# DATA
# ==============================================================================

@pytest.fixture
def store(db):
    s = store_service.create_store(db, owner_id=SELLER_ID, name="Ada's Kitchen", currency="₦", delivery_note="Lagos only")
    s.channel_id = "-1001"
    s.channel_username = "adaskitchen"
    s.bank_name = "GTBank"
    s.account_number = "0123456789"
    s.account_name = "Ada Obi"
    db.commit()
    db.refresh(s)
    return s


@pytest.fixture
def product(db, store):
    return store_service.create_product(db, store, name="Jollof Rice", price="2500", description="Party size")
