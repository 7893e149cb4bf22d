"""
Conversation state: flows, steps and the TTL-bounded session store.

A session is {step, data} for one Telegram user. No session means idle. Every
step belongs to exactly one flow; a transition replaces the data object, and a
flow carries earlier input forward explicitly when it needs it.

The store is an explicit handle passed into the handlers (see BotContext). It
opens its own short-lived DB sessions on the session engine, so it never shares
a transaction with the durable store.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from app.core.time_utils import utcnow
from app.models.conversation_state import ConversationState

logger = logging.getLogger(__name__)


class Flow(str, enum.Enum):
    STORE_CREATE = "store_create"
    CHANNEL_LINK = "channel_link"
    PRODUCT_ADD = "product_add"
    CHECKOUT = "checkout"
    PROOF_UPLOAD = "proof_upload"
    ADDRESS_UPDATE = "address_update"


class Step(str, enum.Enum):
    """Conversation steps. Values are the persisted step names."""

    CREATE_NAME = "create:name"
    CREATE_CURRENCY = "create:currency"
    CREATE_DELIVERY = "create:delivery"

    LINK_CHANNEL = "link:channel"

    PRODUCT_PHOTO = "product:photo"
    PRODUCT_NAME = "product:name"
    PRODUCT_PRICE = "product:price"
    PRODUCT_DESC = "product:desc"
    PRODUCT_STOCK = "product:stock"

    ORDER_QTY = "order:qty"
    PAY_PROOF = "pay:proof"
    ORDER_ADDRESS = "order:address"

    @property
    def flow(self) -> Flow:
        return STEP_FLOWS[self]


STEP_FLOWS = {
    Step.CREATE_NAME: Flow.STORE_CREATE,
    Step.CREATE_CURRENCY: Flow.STORE_CREATE,
    Step.CREATE_DELIVERY: Flow.STORE_CREATE,
    Step.LINK_CHANNEL: Flow.CHANNEL_LINK,
    Step.PRODUCT_PHOTO: Flow.PRODUCT_ADD,
    Step.PRODUCT_NAME: Flow.PRODUCT_ADD,
    Step.PRODUCT_PRICE: Flow.PRODUCT_ADD,
    Step.PRODUCT_DESC: Flow.PRODUCT_ADD,
    Step.PRODUCT_STOCK: Flow.PRODUCT_ADD,
    Step.ORDER_QTY: Flow.CHECKOUT,
    Step.PAY_PROOF: Flow.PROOF_UPLOAD,
    Step.ORDER_ADDRESS: Flow.ADDRESS_UPDATE,
}

if set(STEP_FLOWS) != set(Step):
    raise RuntimeError(f"steps without a flow: {sorted(s.value for s in set(Step) - set(STEP_FLOWS))}")


@dataclass
class ConversationSession:
    step: Step
    data: dict = field(default_factory=dict)

    @property
    def flow(self) -> Flow:
        return self.step.flow


class SessionStore:
    """
    Keyed, TTL-bounded store of ConversationSession per Telegram user.

    Expired rows read as absent and are deleted lazily. A row whose step name is
    no longer known (e.g. left by an older deployment) is also treated as absent.
    """

    def __init__(self, session_factory: Callable[[], DBSession], ttl_seconds: int = 1800):
        self._session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    def get(self, user_id) -> Optional[ConversationSession]:
        key = str(user_id)
        db = self._session_factory()
        try:
            record = db.query(ConversationState).filter(ConversationState.user_id == key).first()
            if not record:
                return None

            if record.expires_at is None or record.expires_at.replace(tzinfo=None) <= utcnow():
                logger.info(f"[Session] Expired: user_id={key}, step={record.step}")
                db.delete(record)
                db.commit()
                return None

            try:
                step = Step(record.step)
            except ValueError:
                logger.warning(f"[Session] Unknown step '{record.step}' for user_id={key}; resetting")
                db.delete(record)
                db.commit()
                return None

            payload = record.payload if isinstance(record.payload, dict) else {}
            return ConversationSession(step=step, data=dict(payload))
        finally:
            db.close()

    def set(self, user_id, step: Step, data: Optional[dict] = None) -> ConversationSession:
        """Replace the user's session. The data object is replaced, never merged."""
        key = str(user_id)
        payload = dict(data or {})
        expires_at = utcnow() + timedelta(seconds=self.ttl_seconds)

        db = self._session_factory()
        try:
            record = db.query(ConversationState).filter(ConversationState.user_id == key).first()
            if record:
                record.step = step.value
                record.payload = payload
                record.expires_at = expires_at
            else:
                db.add(ConversationState(user_id=key, step=step.value, payload=payload, expires_at=expires_at))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(f"[Session] user_id={key} -> {step.value}")
        return ConversationSession(step=step, data=payload)

    def clear(self, user_id) -> None:
        key = str(user_id)
        db = self._session_factory()
        try:
            db.query(ConversationState).filter(ConversationState.user_id == key).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
        logger.info(f"[Session] Cleared user_id={key}")
