"""Store, channel and product reads/writes shared by the chat flows and the dashboard."""
import logging
import re
import secrets
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.audit import AuditLog
from app.core.exceptions import InvalidInput, NotFound
from app.models.order import Order
from app.models.payment import Payment
from app.models.product import Product
from app.models.store import Store
from app.services.subscription import require_active, start_trial

logger = logging.getLogger(__name__)

ACCOUNT_NUMBER_RE = re.compile(r"^\d{10}$")

# Product.price is Numeric(12, 2)
MAX_PRICE = Decimal(10) ** 10
CENT = Decimal("0.01")


# ==============================================================================
# LOOKUPS
# ==============================================================================

def get_store_for_owner(db: Session, owner_id) -> Optional[Store]:
    """Latest store owned by this Telegram user, or None."""
    return (
        db.query(Store)
        .filter(Store.owner_id == str(owner_id))
        .order_by(Store.created_at.desc())
        .first()
    )


def get_store_by_token(db: Session, token: str) -> Optional[Store]:
    if not token:
        return None
    return db.query(Store).filter(Store.owner_token == token).first()


def get_store(db: Session, store_id: str) -> Store:
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise NotFound("Store not found.", reason=f"store_id={store_id}")
    return store


def get_product(db: Session, product_id: str, store_id: Optional[str] = None) -> Product:
    q = db.query(Product).filter(Product.id == product_id)
    if store_id is not None:
        q = q.filter(Product.store_id == store_id)
    product = q.first()
    if not product:
        raise NotFound("That product no longer exists.", reason=f"product_id={product_id}")
    return product


def get_order(db: Session, order_id: str, store_id: Optional[str] = None) -> Order:
    q = db.query(Order).filter(Order.id == order_id)
    if store_id is not None:
        q = q.filter(Order.store_id == store_id)
    order = q.first()
    if not order:
        raise NotFound("Order not found.", reason=f"order_id={order_id}")
    return order


def get_payment(db: Session, payment_id: str, store_id: Optional[str] = None) -> Payment:
    q = db.query(Payment).filter(Payment.id == payment_id)
    if store_id is not None:
        q = q.filter(Payment.store_id == store_id)
    payment = q.first()
    if not payment:
        raise NotFound("Payment not found.", reason=f"payment_id={payment_id}")
    return payment


def list_products(db: Session, store: Store) -> List[Product]:
    return (
        db.query(Product)
        .filter(Product.store_id == store.id)
        .order_by(Product.created_at.desc())
        .all()
    )


# ==============================================================================
# STORE
# ==============================================================================

def create_store(db: Session, owner_id, name: str, currency: str, delivery_note: str) -> Store:
    """Persist a new store with a fresh dashboard token and the free trial."""
    store = Store(
        owner_id=str(owner_id),
        owner_token=secrets.token_urlsafe(24),
        name=name.strip(),
        currency=(currency or "").strip() or "₦",
        delivery_note=(delivery_note or "").strip(),
    )
    start_trial(store)
    db.add(store)
    db.commit()
    db.refresh(store)

    logger.info(f"[Store] Created store_id={store.id} for owner_id={owner_id}")
    AuditLog.log_action("create", "store", store.id, owner_id, changes={"name": store.name})
    return store


def link_channel(db: Session, store: Store, channel_id, channel_username: str) -> Store:
    require_active(store)
    store.channel_id = str(channel_id)
    store.channel_username = channel_username or ""
    db.commit()
    db.refresh(store)

    logger.info(f"[Store] Linked channel_id={channel_id} to store_id={store.id}")
    AuditLog.log_action("link_channel", "store", store.id, store.owner_id, changes={"channel_id": store.channel_id})
    return store


def update_bank_details(db: Session, store: Store, bank_name: str, account_number: str, account_name: str) -> Store:
    require_active(store)
    bank_name = (bank_name or "").strip()
    account_number = (account_number or "").strip()
    account_name = (account_name or "").strip()

    if not bank_name or not account_number or not account_name:
        raise InvalidInput("Bank name, account number and account name are required.", code="all_fields_required")
    if not ACCOUNT_NUMBER_RE.match(account_number):
        raise InvalidInput("Account number must be 10 digits.", code="account_number_invalid")

    store.bank_name = bank_name
    store.account_number = account_number
    store.account_name = account_name
    db.commit()
    db.refresh(store)

    # Bank details themselves are never logged
    AuditLog.log_action("update_bank", "store", store.id, store.owner_id)
    return store


# ==============================================================================
# PRODUCTS
# ==============================================================================

def parse_price(value) -> Decimal:
    """Non-negative price from chat text or JSON. Raises InvalidInput otherwise."""
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput("Send a valid price (e.g. 2500).", code="price_invalid")
    if not price.is_finite() or price < 0 or price >= MAX_PRICE or price != price.quantize(CENT):
        raise InvalidInput("Send a valid price (e.g. 2500).", code="price_invalid")
    return price


def create_product(
    db: Session,
    store: Store,
    name: str,
    price,
    description: str = "",
    in_stock: bool = True,
    photo_file_id: Optional[str] = None,
) -> Product:
    require_active(store)
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Product name is required.", code="name_required")

    product = Product(
        store_id=store.id,
        name=name,
        price=parse_price(price),
        description=(description or "").strip(),
        in_stock=bool(in_stock),
        photo_file_id=(photo_file_id or "").strip() or None,
    )
    db.add(product)
    db.commit()
    db.refresh(product)

    logger.info(f"[Product] Created product_id={product.id} in store_id={store.id}")
    AuditLog.log_action("create", "product", product.id, store.owner_id, changes={"name": name, "price": product.price})
    return product


def update_product(
    db: Session,
    store: Store,
    product_id: str,
    name: str,
    price,
    description: str = "",
    in_stock: bool = True,
    photo_file_id: Optional[str] = None,
) -> Product:
    """Full replace of the editable fields. The price change also applies to unpaid orders."""
    require_active(store)
    product = get_product(db, product_id, store_id=store.id)
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Product name is required.", code="name_required")

    product.name = name
    product.price = parse_price(price)
    product.description = (description or "").strip()
    product.in_stock = bool(in_stock)
    product.photo_file_id = (photo_file_id or "").strip() or None
    db.commit()
    db.refresh(product)

    AuditLog.log_action(
        "update", "product", product.id, store.owner_id,
        changes={"price": product.price, "in_stock": product.in_stock},
    )
    return product
