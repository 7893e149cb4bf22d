from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class PaymentResponse(BaseModel):
    id: str
    order_id: str
    buyer_id: str
    buyer_username: Optional[str] = ""
    amount: float
    proof_file_id: str
    proof_type: str
    status: str
    created_at: Optional[datetime] = None
    product_name: Optional[str] = None
    qty: Optional[int] = None
    order_status: Optional[str] = None
    currency: str = ""
