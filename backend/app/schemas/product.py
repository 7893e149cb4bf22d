from pydantic import BaseModel
from typing import Optional, Union
from datetime import datetime
from decimal import Decimal


class ProductWrite(BaseModel):
    """Body for POST /api/products and PUT /api/products/{id} (full replace)."""
    name: str = ""
    price: Union[Decimal, str] = Decimal("0")
    description: str = ""
    in_stock: bool = True
    photo_file_id: Optional[str] = None


class ProductResponse(BaseModel):
    id: str
    store_id: str
    name: str
    price: float
    description: Optional[str] = ""
    in_stock: bool
    photo_file_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
