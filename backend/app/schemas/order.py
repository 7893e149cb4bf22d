from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class OrderStatusUpdate(BaseModel):
    status: str = ""


class OrderResponse(BaseModel):
    id: str
    product_id: str
    product_name: Optional[str] = None
    product_price: float = 0
    buyer_id: str
    buyer_username: Optional[str] = ""
    qty: int
    # Live price x qty, recomputed on every read
    total: float = 0
    currency: str = ""
    status: str
    delivery_text: Optional[str] = None
    created_at: Optional[datetime] = None
