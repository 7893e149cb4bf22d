"""Orders: list with product info and live totals; operator status override."""
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_store, get_db
from app.models.order import Order
from app.models.product import Product
from app.models.store import Store
from app.schemas.order import OrderResponse, OrderStatusUpdate
from app.services import order_lifecycle, store_service

router = APIRouter()


def _order_row(order: Order, product, currency: str) -> dict:
    price = Decimal(str(product.price)) if product and product.price is not None else Decimal("0")
    return OrderResponse(
        id=order.id,
        product_id=order.product_id,
        product_name=product.name if product else None,
        product_price=float(price),
        buyer_id=order.buyer_id,
        buyer_username=order.buyer_username,
        qty=order.qty,
        total=float(price * int(order.qty)),
        currency=currency or "",
        status=order.status,
        delivery_text=order.delivery_text,
        created_at=order.created_at,
    ).model_dump(mode="json")


@router.get("")
def list_orders(db: Session = Depends(get_db), store: Store = Depends(get_current_store)):
    rows = (
        db.query(Order, Product)
        .outerjoin(Product, Product.id == Order.product_id)
        .filter(Order.store_id == store.id)
        .order_by(Order.created_at.desc())
        .all()
    )
    return {"ok": True, "orders": [_order_row(o, p, store.currency) for o, p in rows]}


@router.api_route("/{order_id}/status", methods=["PUT", "PATCH"])
def override_status(
    order_id: str,
    data: OrderStatusUpdate,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Operator override: any non-empty status, no state-machine check."""
    order = store_service.get_order(db, order_id, store_id=store.id)
    order = order_lifecycle.set_order_status(db, order, store.owner_id, data.status)
    return {"ok": True, "order": _order_row(order, order.product, store.currency)}
