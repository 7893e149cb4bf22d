"""Store: read profile + subscription, update bank details."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_store, get_db
from app.core.config import settings
from app.models.store import Store
from app.schemas.store import BankDetailsUpdate, StoreResponse, SubscriptionInfo
from app.services import store_service
from app.services.subscription import subscription_info

router = APIRouter()


@router.get("")
def get_store(store: Store = Depends(get_current_store)):
    """Store profile with subscription status. Readable even when the subscription has lapsed."""
    return {
        "ok": True,
        "store": StoreResponse.model_validate(store).model_dump(mode="json"),
        "subscription": SubscriptionInfo(**subscription_info(store)).model_dump(),
        "support_link": settings.support_link,
    }


@router.api_route("/bank", methods=["PUT", "PATCH"])
def update_bank(data: BankDetailsUpdate, db: Session = Depends(get_db), store: Store = Depends(get_current_store)):
    store = store_service.update_bank_details(db, store, data.bank_name, data.account_number, data.account_name)
    return {"ok": True, "store": StoreResponse.model_validate(store).model_dump(mode="json")}
