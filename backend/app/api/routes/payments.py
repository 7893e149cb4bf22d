"""Payments: review queue and approve/reject from the dashboard."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.agent import notifications
from app.agent.conversation_state import SessionStore
from app.api.deps import get_current_store, get_db, get_gateway, get_sessions
from app.core.exceptions import NotFound
from app.models.order import Order
from app.models.payment import Payment
from app.models.product import Product
from app.models.store import Store
from app.schemas.payment import PaymentResponse
from app.services import order_lifecycle, store_service
from app.telegram.gateway import TelegramGateway

router = APIRouter()


def _payment_row(payment: Payment, order: Optional[Order], product: Optional[Product], currency: str) -> dict:
    return PaymentResponse(
        id=payment.id,
        order_id=payment.order_id,
        buyer_id=payment.buyer_id,
        buyer_username=payment.buyer_username,
        amount=float(payment.amount),
        proof_file_id=payment.proof_file_id,
        proof_type=payment.proof_type,
        status=payment.status,
        created_at=payment.created_at,
        product_name=product.name if product else None,
        qty=order.qty if order else None,
        order_status=order.status if order else None,
        currency=currency or "",
    ).model_dump(mode="json")


def _query(db: Session, store: Store):
    return (
        db.query(Payment, Order, Product)
        .outerjoin(Order, Order.id == Payment.order_id)
        .outerjoin(Product, Product.id == Order.product_id)
        .filter(Payment.store_id == store.id)
    )


@router.get("")
def list_payments(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    q = _query(db, store)
    if status:
        q = q.filter(Payment.status == status.strip().lower())
    rows = q.order_by(Payment.created_at.desc()).all()
    return {"ok": True, "payments": [_payment_row(p, o, pr, store.currency) for p, o, pr in rows]}


@router.get("/{payment_id}")
def get_payment(payment_id: str, db: Session = Depends(get_db), store: Store = Depends(get_current_store)):
    row = _query(db, store).filter(Payment.id == payment_id).first()
    if not row:
        # Same error for absent and foreign payments
        raise NotFound("Payment not found.", reason=f"payment_id={payment_id}")
    payment, order, product = row
    return {"ok": True, "payment": _payment_row(payment, order, product, store.currency)}


@router.put("/{payment_id}/approve")
async def approve_payment(
    payment_id: str,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
    gateway: TelegramGateway = Depends(get_gateway),
    sessions: SessionStore = Depends(get_sessions),
):
    payment = store_service.get_payment(db, payment_id, store_id=store.id)
    payment, order = order_lifecycle.approve_payment(db, payment, store.owner_id, via="dashboard")

    await notifications.prompt_delivery_details(sessions, gateway, order)
    return {"ok": True, "payment": _payment_row(payment, order, order.product, store.currency)}


@router.put("/{payment_id}/reject")
async def reject_payment(
    payment_id: str,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
    gateway: TelegramGateway = Depends(get_gateway),
):
    payment = store_service.get_payment(db, payment_id, store_id=store.id)
    payment, order = order_lifecycle.reject_payment(db, payment, store.owner_id, via="dashboard")

    await notifications.notify_payment_rejected(gateway, payment)
    return {"ok": True, "payment": _payment_row(payment, order, order.product, store.currency)}
