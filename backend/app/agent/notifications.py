"""
Outbound notifications to the OTHER party of a lifecycle transition.

All of these are best-effort: they run after the transition has committed, and a
gateway failure is logged and swallowed. It never undoes or fails the
transition. Replies to the acting user are sent by the handlers themselves.
"""
import logging
from typing import Awaitable, Optional

from app.agent.conversation_state import SessionStore, Step
from app.models.order import Order
from app.models.payment import Payment, ProofType
from app.models.product import Product
from app.models.store import Store
from app.telegram import keyboards
from app.telegram.gateway import TelegramGateway
from app.telegram.utils import buyer_label, esc, money, order_deep_link

logger = logging.getLogger(__name__)


async def best_effort(what: str, action: Awaitable) -> bool:
    """Await a notification; log and swallow any failure. Returns True on success."""
    try:
        await action
        return True
    except Exception as e:
        logger.warning(f"[Notify] {what} failed: {e}", exc_info=True)
        return False


# ==============================================================================
# BUYER
# ==============================================================================

def payment_instructions_text(store: Store, product: Product, order: Order, total) -> str:
    head = (
        f"Order created ✅\n\n"
        f"<b>{esc(product.name)}</b>\n"
        f"Qty: {order.qty}\n"
        f"Total: <b>{esc(money(store.currency, total))}</b>\n"
        f"Ref: <code>{esc(order.id)}</code>\n\n"
    )
    if not store.has_bank_details:
        return head + "⚠️ Seller hasn't set bank details yet. The seller will contact you for payment."
    return head + (
        f"<b>Pay via bank transfer:</b>\n"
        f"Bank: <b>{esc(store.bank_name)}</b>\n"
        f"Account: <b>{esc(store.account_number)}</b>\n"
        f"Name: <b>{esc(store.account_name)}</b>\n\n"
        f"After paying, tap <b>I've paid</b> and upload your receipt/proof."
    )


async def send_payment_instructions(gateway: TelegramGateway, chat_id, store: Store, product: Product, order: Order, total):
    markup = keyboards.pay_menu(order.id) if store.has_bank_details else None
    await gateway.send_text(chat_id, payment_instructions_text(store, product, order, total), markup)


async def _prompt_delivery_details(sessions: SessionStore, gateway: TelegramGateway, order: Order):
    sessions.set(order.buyer_id, Step.ORDER_ADDRESS, {"order_id": order.id})
    await gateway.send_text(
        order.buyer_id,
        f"Payment confirmed ✅\nOrder Ref: <code>{esc(order.id)}</code>\n\n"
        f"Send delivery details in ONE message:\n"
        f"<b>Name</b>\n<b>Phone</b>\n<b>Address</b>\n<b>Landmark</b>",
        keyboards.update_delivery_menu(order.id),
    )


async def prompt_delivery_details(sessions: SessionStore, gateway: TelegramGateway, order: Order) -> bool:
    """After approval: put the buyer on the address step and ask for details."""
    return await best_effort(
        f"delivery prompt order_id={order.id}",
        _prompt_delivery_details(sessions, gateway, order),
    )


async def notify_payment_rejected(gateway: TelegramGateway, payment: Payment) -> bool:
    return await best_effort(
        f"rejection notice payment_id={payment.id}",
        gateway.send_text(
            payment.buyer_id,
            f"Payment rejected ❌\nOrder Ref: <code>{esc(payment.order_id)}</code>\n\n"
            f"Please tap the payment button again and resend proof.",
            keyboards.pay_menu(payment.order_id),
        ),
    )


async def notify_buyer_status(gateway: TelegramGateway, order: Order, label: str) -> bool:
    return await best_effort(
        f"status update order_id={order.id}",
        gateway.send_text(order.buyer_id, f"Update: <b>{esc(label)}</b>\nOrder Ref: <code>{esc(order.id)}</code>"),
    )


# ==============================================================================
# SELLER
# ==============================================================================

async def notify_seller_new_order(gateway: TelegramGateway, store: Store, product: Product, order: Order) -> bool:
    return await best_effort(
        f"new order notice order_id={order.id}",
        gateway.send_text(
            store.owner_id,
            f"New order ✅\n\n"
            f"<b>{esc(product.name)}</b>\n"
            f"Qty: {order.qty}\n"
            f"Buyer: {buyer_label(order.buyer_username)}\n"
            f"Ref: <code>{esc(order.id)}</code>\n\n"
            f"Waiting for payment proof...",
        ),
    )


async def notify_seller_payment(
    gateway: TelegramGateway,
    store: Store,
    product: Optional[Product],
    order: Order,
    payment: Payment,
) -> bool:
    """Payment review message with approve/reject buttons."""
    caption = (
        f"Payment to verify ⏳\n\n"
        f"Store: <b>{esc(store.name)}</b>\n"
        f"Product: <b>{esc(product.name if product else '')}</b>\n"
        f"Qty: {esc(order.qty)}\n"
        f"Amount: <b>{esc(money(store.currency, payment.amount))}</b>\n"
        f"Buyer: {buyer_label(payment.buyer_username, payment.buyer_id)}\n"
        f"Order Ref: <code>{esc(order.id)}</code>"
    )
    markup = keyboards.seller_review_menu(payment.id)
    if payment.proof_type == ProofType.PHOTO:
        action = gateway.send_photo(store.owner_id, payment.proof_file_id, caption, markup)
    else:
        action = gateway.send_text(
            store.owner_id,
            f"{caption}\n\nProof (document file_id): <code>{esc(payment.proof_file_id)}</code>",
            markup,
        )
    return await best_effort(f"payment review payment_id={payment.id}", action)


async def notify_seller_delivery_details(gateway: TelegramGateway, store: Store, order: Order) -> bool:
    return await best_effort(
        f"delivery details notice order_id={order.id}",
        gateway.send_text(
            store.owner_id,
            f"Delivery details 📦\n\n"
            f"Order Ref: <code>{esc(order.id)}</code>\n"
            f"Buyer: {buyer_label(order.buyer_username, order.buyer_id)}\n\n"
            f"<b>Details:</b>\n{esc(order.delivery_text)}",
            keyboards.seller_delivery_menu(order.id),
        ),
    )


# ==============================================================================
# CHANNEL
# ==============================================================================

async def publish_product(gateway: TelegramGateway, store: Store, product: Product) -> bool:
    """Post a new product to the linked channel with an Order button."""
    if not store.channel_id:
        return False
    caption = f"<b>{esc(product.name)}</b>\nPrice: {esc(money(store.currency, product.price))}\n"
    if product.description:
        caption += f"\n{esc(product.description)}"
    markup = keyboards.order_button(product.id, order_deep_link(product.id))
    if product.photo_file_id:
        action = gateway.send_photo(store.channel_id, product.photo_file_id, caption, markup)
    else:
        action = gateway.send_text(store.channel_id, caption, markup)
    return await best_effort(f"channel post product_id={product.id}", action)
