from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class BankDetailsUpdate(BaseModel):
    # Presence and format are validated in the service so errors carry stable codes
    bank_name: str = ""
    account_number: str = ""
    account_name: str = ""


class StoreResponse(BaseModel):
    id: str
    name: str
    currency: str
    delivery_note: Optional[str] = None
    channel_id: Optional[str] = None
    channel_username: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionInfo(BaseModel):
    status: str
    expires_at: str = ""
    active: bool
