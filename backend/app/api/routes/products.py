"""Products: list newest first, create, full update."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_store, get_db
from app.models.store import Store
from app.schemas.product import ProductResponse, ProductWrite
from app.services import store_service

router = APIRouter()


def _dump(product) -> dict:
    return ProductResponse.model_validate(product).model_dump(mode="json")


@router.get("")
def list_products(db: Session = Depends(get_db), store: Store = Depends(get_current_store)):
    return {"ok": True, "products": [_dump(p) for p in store_service.list_products(db, store)]}


@router.post("")
def create_product(data: ProductWrite, db: Session = Depends(get_db), store: Store = Depends(get_current_store)):
    product = store_service.create_product(
        db, store,
        name=data.name,
        price=data.price,
        description=data.description,
        in_stock=data.in_stock,
        photo_file_id=data.photo_file_id,
    )
    return {"ok": True, "product": _dump(product)}


@router.put("/{product_id}")
def update_product(
    product_id: str,
    data: ProductWrite,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    product = store_service.update_product(
        db, store, product_id,
        name=data.name,
        price=data.price,
        description=data.description,
        in_stock=data.in_stock,
        photo_file_id=data.photo_file_id,
    )
    return {"ok": True, "product": _dump(product)}
