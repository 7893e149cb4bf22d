"""
Subscription gate: is this store allowed to mutate anything right now?

FAIL-OPEN: when the subscription fields are missing (legacy rows) or the expiry
cannot be parsed, the store is treated as active unless its status explicitly
says expired/inactive.
"""
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import SubscriptionRequired
from app.core.time_utils import utcnow, to_utc_naive, to_utc_z
from app.models.store import Store, SubscriptionStatus

logger = logging.getLogger(__name__)

_MISSING = object()
_BLOCKING_STATUSES = (SubscriptionStatus.EXPIRED, SubscriptionStatus.INACTIVE)


def _field(store: Any, name: str) -> Any:
    if isinstance(store, Mapping):
        return store.get(name, _MISSING)
    return getattr(store, name, _MISSING)


def is_active(store: Any, now=None) -> bool:
    """Pure predicate over subscription_status + subscription_expires_at.

    Accepts a Store row or a plain mapping (e.g. a legacy record).
    """
    if store is None:
        return True

    raw_status = _field(store, "subscription_status")
    raw_expiry = _field(store, "subscription_expires_at")
    if raw_status is _MISSING or raw_expiry is _MISSING:
        return True

    status = str(raw_status or "").strip().lower()
    expires_at = to_utc_naive(raw_expiry) if isinstance(raw_expiry, (str, datetime)) else None

    if expires_at is None:
        return status not in _BLOCKING_STATUSES
    return expires_at > (to_utc_naive(now) if now is not None else utcnow())


def subscription_info(store: Any, now=None) -> dict:
    raw_status = _field(store, "subscription_status") if store is not None else None
    raw_expiry = _field(store, "subscription_expires_at") if store is not None else None
    status = str(raw_status or "").strip().lower() if raw_status is not _MISSING else ""
    expires_at = to_utc_naive(raw_expiry) if raw_expiry not in (None, _MISSING) else None
    return {
        "status": status or SubscriptionStatus.UNKNOWN,
        "expires_at": to_utc_z(expires_at) or "",
        "active": is_active(store, now=now),
    }


def require_active(store: Store) -> None:
    """Raise SubscriptionRequired (carrying the support link) if the store is blocked."""
    if is_active(store):
        return
    info = subscription_info(store)
    logger.info(f"[Subscription] Blocked store_id={store.id} status={info['status']} expires_at={info['expires_at']}")
    raise SubscriptionRequired(expires_at=info["expires_at"])


def start_trial(store: Store, now=None) -> None:
    """Stamp a fresh store with the free trial."""
    start = to_utc_naive(now) if now is not None else utcnow()
    store.subscription_status = SubscriptionStatus.TRIAL
    store.subscription_expires_at = start + timedelta(days=settings.FREE_TRIAL_DAYS)


def ensure_subscription_defaults(db: Session, store: Optional[Store]) -> Optional[Store]:
    """Backfill trial status/expiry on rows created before subscriptions existed."""
    if store is None:
        return None
    if store.subscription_status and store.subscription_expires_at:
        return store

    try:
        if not store.subscription_status:
            store.subscription_status = SubscriptionStatus.TRIAL
        if not store.subscription_expires_at:
            base = to_utc_naive(store.created_at) or utcnow()
            store.subscription_expires_at = base + timedelta(days=settings.FREE_TRIAL_DAYS)
        db.commit()
        db.refresh(store)
        logger.info(f"[Subscription] Backfilled defaults for store_id={store.id}")
    except SQLAlchemyError:
        # The gate is fail-open: a failed backfill must not block the merchant
        db.rollback()
        logger.warning(f"[Subscription] Could not backfill defaults for store_id={store.id}", exc_info=True)
    return store
