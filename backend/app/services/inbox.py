"""Inbound update inbox. Telegram delivers webhooks at-least-once."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.processed_update import ProcessedUpdate

logger = logging.getLogger(__name__)


def claim_update(db: Session, update_id: int, kind: str) -> bool:
    """
    Record update_id as handled. Returns False when it was already recorded,
    meaning this delivery is a retry and must be dropped.
    """
    db.add(ProcessedUpdate(update_id=update_id, kind=kind))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"[Inbox] Duplicate delivery dropped: update_id={update_id}")
        return False
    return True
