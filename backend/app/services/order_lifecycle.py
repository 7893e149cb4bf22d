"""
Order/Payment lifecycle engine: the ONLY place order and payment status is written.

Called from the Telegram conversation handlers (buyer and seller actions) and
from the dashboard API. Every mutating operation checks the subscription gate
first, then ownership, then the state guard.

ORDER:   pending -> awaiting_confirmation -> paid -> delivery_details_received
                 -> packed -> out_for_delivery -> delivered (terminal)
         awaiting_confirmation -> pending (payment rejected)
PAYMENT: awaiting -> confirmed | rejected (both terminal)

CONCURRENCY: payment resolution is a conditional UPDATE ... WHERE status =
'awaiting'. When two sellers act on the same payment, the first commit wins and
the other gets AlreadyResolved before any notification is sent.

Side effects (chat notifications) are NOT sent here. Callers send them after
a successful return, via app.agent.notifications.
"""
import logging
from decimal import Decimal
from typing import NoReturn, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.audit import AuditLog
from app.core.exceptions import (
    AlreadyResolved,
    Forbidden,
    InvalidInput,
    NotFound,
    NotOwner,
    OutOfStock,
)
from app.models.order import Order, OrderStatus
from app.models.payment import Payment, PaymentStatus, ProofType
from app.models.product import Product
from app.models.store import Store
from app.services.subscription import require_active

logger = logging.getLogger(__name__)

# Seller delivery buttons / dashboard stage names -> order status
DELIVERY_STAGES = {
    "packed": OrderStatus.PACKED,
    "out": OrderStatus.OUT_FOR_DELIVERY,
    "out_for_delivery": OrderStatus.OUT_FOR_DELIVERY,
    "delivered": OrderStatus.DELIVERED,
}

MAX_QUANTITY = 10_000

DELIVERY_STAGE_LABELS = {
    OrderStatus.PACKED: "Packed",
    OrderStatus.OUT_FOR_DELIVERY: "Out for delivery",
    OrderStatus.DELIVERED: "Delivered",
}


# ==============================================================================
# HELPERS
# ==============================================================================

def _store_for(db: Session, store_id: str) -> Store:
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise NotFound("Store not found.", reason=f"store_id={store_id}")
    return store


def _require_seller(store: Store, acting_user_id) -> None:
    if str(store.owner_id) != str(acting_user_id):
        raise Forbidden(reason=f"user={acting_user_id} is not owner of store_id={store.id}")


def _reload_order(db: Session, order_id: str) -> Order:
    """Re-read from the database instead of trusting a possibly stale instance."""
    order = db.query(Order).populate_existing().filter(Order.id == order_id).first()
    if not order:
        raise NotFound("Order not found.", reason=f"order_id={order_id}")
    return order


def _raise_proof_conflict(db: Session, order_id: str) -> NoReturn:
    order = _reload_order(db, order_id)
    if order.status in OrderStatus.PAID_OR_LATER:
        raise AlreadyResolved("This order is already paid.", reason=f"order_id={order.id} status={order.status}")
    raise AlreadyResolved(
        "Your previous proof was just reviewed by the seller. Check the latest update and try again.",
        reason=f"order_id={order.id} status={order.status}",
    )


def order_total(db: Session, order: Order) -> Decimal:
    """Live price x qty.

    The order never stores a price: an edit to the product price changes what an
    unpaid order owes. This is intended behaviour.
    """
    product = db.query(Product).populate_existing().filter(Product.id == order.product_id).first()
    price = Decimal(str(product.price)) if product and product.price is not None else Decimal("0")
    return price * int(order.qty)


def parse_quantity(text: str) -> int:
    """Positive whole number from chat text. Raises InvalidInput otherwise."""
    try:
        value = Decimal((text or "").strip())
    except ArithmeticError:
        raise InvalidInput("Send a valid quantity (e.g. 1).")
    if not value.is_finite() or value <= 0 or value > MAX_QUANTITY or value != value.to_integral_value():
        raise InvalidInput("Send a valid quantity (e.g. 1).")
    return int(value)


# ==============================================================================
# BUYER OPERATIONS
# ==============================================================================

def create_order(
    db: Session,
    store: Store,
    product: Product,
    buyer_id,
    buyer_username: str,
    qty: int,
) -> Order:
    """New order in `pending`. Stock is re-read here, never trusted from the session."""
    require_active(store)

    if not isinstance(qty, int) or isinstance(qty, bool) or not 0 < qty <= MAX_QUANTITY:
        raise InvalidInput("Send a valid quantity (e.g. 1).")

    fresh = (
        db.query(Product)
        .populate_existing()
        .filter(Product.id == product.id, Product.store_id == store.id)
        .first()
    )
    if not fresh:
        raise NotFound("That product no longer exists.", reason=f"product_id={product.id}")
    if not fresh.in_stock:
        raise OutOfStock()

    order = Order(
        store_id=store.id,
        product_id=fresh.id,
        buyer_id=str(buyer_id),
        buyer_username=buyer_username or "",
        qty=qty,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info(f"[Lifecycle] Order created: order_id={order.id}, store_id={store.id}, qty={qty}")
    AuditLog.log_transition("order", order.id, None, OrderStatus.PENDING, buyer_id)
    return order


def submit_payment(
    db: Session,
    order: Order,
    buyer_id,
    buyer_username: str,
    proof_file_id: str,
    proof_type: str,
) -> Payment:
    """
    Record proof of payment as an `awaiting` Payment; order -> awaiting_confirmation.

    Redelivery of the same proof returns the existing awaiting payment. A new proof
    while one is still awaiting supersedes it (the old one becomes `rejected`),
    so at most one payment per order is ever awaiting.
    """
    store = _store_for(db, order.store_id)
    require_active(store)

    if str(order.buyer_id) != str(buyer_id):
        raise NotOwner(reason=f"user={buyer_id} submitted proof for order_id={order.id}")
    if not proof_file_id or proof_type not in (ProofType.PHOTO, ProofType.DOCUMENT):
        raise InvalidInput("Upload a screenshot/photo or document as proof of payment.")

    order = _reload_order(db, order.id)
    if order.status in OrderStatus.PAID_OR_LATER:
        raise AlreadyResolved("This order is already paid.", reason=f"order_id={order.id} status={order.status}")

    existing = (
        db.query(Payment)
        .filter(Payment.order_id == order.id, Payment.status == PaymentStatus.AWAITING)
        .first()
    )
    if existing and existing.proof_file_id == proof_file_id:
        logger.info(f"[Lifecycle] Duplicate proof ignored: payment_id={existing.id}")
        return existing

    previous = order.status
    if existing:
        superseded = db.query(Payment).filter(
            Payment.id == existing.id, Payment.status == PaymentStatus.AWAITING
        ).update({Payment.status: PaymentStatus.REJECTED}, synchronize_session=False)
        if not superseded:
            # The seller resolved the older proof after it was read
            db.rollback()
            _raise_proof_conflict(db, order.id)

    moved = db.query(Order).filter(
        Order.id == order.id, Order.status.notin_(OrderStatus.PAID_OR_LATER)
    ).update({Order.status: OrderStatus.AWAITING_CONFIRMATION}, synchronize_session=False)
    if not moved:
        db.rollback()
        _raise_proof_conflict(db, order.id)

    payment = Payment(
        order_id=order.id,
        store_id=order.store_id,
        buyer_id=str(buyer_id),
        buyer_username=buyer_username or "",
        amount=order_total(db, order),
        proof_file_id=proof_file_id,
        proof_type=proof_type,
        status=PaymentStatus.AWAITING,
    )
    db.add(payment)
    try:
        db.commit()
    except IntegrityError:
        # Another submission for this order committed first
        db.rollback()
        raise AlreadyResolved("A payment for this order is already awaiting review.")
    db.refresh(payment)
    db.refresh(order)

    logger.info(f"[Lifecycle] Payment submitted: payment_id={payment.id}, order_id={order.id}, amount={payment.amount}")
    if existing:
        AuditLog.log_transition("payment", existing.id, PaymentStatus.AWAITING, PaymentStatus.REJECTED, buyer_id)
    AuditLog.log_transition("payment", payment.id, None, PaymentStatus.AWAITING, buyer_id)
    AuditLog.log_transition("order", order.id, previous, OrderStatus.AWAITING_CONFIRMATION, buyer_id)
    return payment


def record_delivery_details(db: Session, order: Order, buyer_id, text: str) -> Order:
    """
    Save the buyer's delivery text. A paid order advances to
    delivery_details_received; later stages keep their status and only the text
    is updated. Delivered orders are closed.
    """
    store = _store_for(db, order.store_id)
    require_active(store)

    if str(order.buyer_id) != str(buyer_id):
        raise NotOwner(reason=f"user={buyer_id} sent details for order_id={order.id}")
    text = (text or "").strip()
    if not text:
        raise InvalidInput("Send your delivery details as text (Name, Phone, Address, Landmark).")

    order = _reload_order(db, order.id)
    if order.status == OrderStatus.DELIVERED:
        raise AlreadyResolved("This order has already been delivered.")

    previous = order.status
    order.delivery_text = text
    if previous in (OrderStatus.PAID, OrderStatus.DELIVERY_DETAILS_RECEIVED):
        order.status = OrderStatus.DELIVERY_DETAILS_RECEIVED
    db.commit()
    db.refresh(order)

    if order.status != previous:
        AuditLog.log_transition("order", order.id, previous, order.status, buyer_id)
    return order


# ==============================================================================
# SELLER OPERATIONS
# ==============================================================================

def _resolve_payment(
    db: Session,
    payment: Payment,
    acting_user_id,
    new_status: str,
    order_status: str,
    via: str,
) -> Tuple[Payment, Order]:
    store = _store_for(db, payment.store_id)
    require_active(store)
    _require_seller(store, acting_user_id)

    updated = (
        db.query(Payment)
        .filter(Payment.id == payment.id, Payment.status == PaymentStatus.AWAITING)
        .update({Payment.status: new_status}, synchronize_session=False)
    )
    if updated == 0:
        db.rollback()
        current = db.query(Payment.status).filter(Payment.id == payment.id).scalar()
        raise AlreadyResolved(
            f"Payment already {current or 'resolved'}.",
            reason=f"payment_id={payment.id} status={current}",
        )

    order = db.query(Order).filter(Order.id == payment.order_id, Order.store_id == payment.store_id).first()
    if not order:
        db.rollback()
        raise NotFound("Order not found.", reason=f"order_id={payment.order_id}")
    previous = order.status
    order.status = order_status
    db.commit()
    db.refresh(payment)
    db.refresh(order)

    logger.info(
        f"[Lifecycle] Payment {new_status}: payment_id={payment.id}, order_id={order.id}, by={acting_user_id}"
    )
    AuditLog.log_transition("payment", payment.id, PaymentStatus.AWAITING, new_status, acting_user_id, via=via)
    AuditLog.log_transition("order", order.id, previous, order_status, acting_user_id, via=via)
    return payment, order


def approve_payment(db: Session, payment: Payment, acting_user_id, via: str = "chat") -> Tuple[Payment, Order]:
    """awaiting -> confirmed, order -> paid. Caller then requests delivery details."""
    return _resolve_payment(db, payment, acting_user_id, PaymentStatus.CONFIRMED, OrderStatus.PAID, via)


def reject_payment(db: Session, payment: Payment, acting_user_id, via: str = "chat") -> Tuple[Payment, Order]:
    """awaiting -> rejected, order -> pending so the buyer can resubmit proof."""
    return _resolve_payment(db, payment, acting_user_id, PaymentStatus.REJECTED, OrderStatus.PENDING, via)


def set_delivery_status(db: Session, order: Order, acting_user_id, stage: str, via: str = "chat") -> Order:
    """Seller fulfilment update: packed | out_for_delivery | delivered."""
    new_status = DELIVERY_STAGES.get((stage or "").strip().lower())
    if not new_status:
        raise InvalidInput(f"Unknown delivery stage: {stage}")

    store = _store_for(db, order.store_id)
    require_active(store)
    _require_seller(store, acting_user_id)

    order = _reload_order(db, order.id)
    if order.status == OrderStatus.DELIVERED:
        raise AlreadyResolved("This order is already delivered.")
    if order.status == new_status:
        raise AlreadyResolved(f"Order is already {DELIVERY_STAGE_LABELS[new_status].lower()}.")
    if order.status not in OrderStatus.PAID_OR_LATER:
        raise InvalidInput("This order has not been paid yet.")

    previous = order.status
    updated = (
        db.query(Order)
        .filter(Order.id == order.id, Order.status == previous)
        .update({Order.status: new_status}, synchronize_session=False)
    )
    if updated == 0:
        db.rollback()
        raise AlreadyResolved("Order was updated by someone else. Refresh and try again.")
    db.commit()
    db.refresh(order)

    logger.info(f"[Lifecycle] Delivery status: order_id={order.id}, {previous} -> {new_status}")
    AuditLog.log_transition("order", order.id, previous, new_status, acting_user_id, via=via)
    return order


def set_order_status(db: Session, order: Order, acting_user_id, status: str) -> Order:
    """
    Dashboard override: apply ANY non-empty status unconditionally.

    No state-machine check; strings outside OrderStatus are accepted.
    """
    status = (status or "").strip()
    if not status:
        raise InvalidInput("Status is required.", code="status_required")

    store = _store_for(db, order.store_id)
    require_active(store)
    _require_seller(store, acting_user_id)

    order = _reload_order(db, order.id)
    previous = order.status
    order.status = status
    db.commit()
    db.refresh(order)

    logger.warning(f"[Lifecycle] Status override: order_id={order.id}, {previous} -> {status}")
    AuditLog.log_transition("order", order.id, previous, status, acting_user_id, via="dashboard")
    return order
