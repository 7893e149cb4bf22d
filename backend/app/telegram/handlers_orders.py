"""
Order flows: buyer checkout, proof upload and delivery details, plus the seller's
payment review and delivery-status buttons.

Status changes go through app.services.order_lifecycle only. Notifications to
the other party are sent after the lifecycle call returns, and are best-effort.
"""
import logging

from app.agent import notifications
from app.agent.conversation_state import ConversationSession, Step
from app.core.exceptions import AlreadyResolved, NotFound, NotOwner
from app.models.order import OrderStatus
from app.models.payment import ProofType
from app.services import order_lifecycle, store_service
from app.services.subscription import ensure_subscription_defaults, require_active
from app.telegram import keyboards
from app.telegram.context import BotContext
from app.telegram.events import InboundCallback, InboundMessage
from app.telegram.utils import esc

logger = logging.getLogger(__name__)

SESSION_EXPIRED = "Session expired. Please order again."


def _buyer_order(ctx: BotContext, order_id, buyer_id):
    """Order placed by this buyer. Absent and foreign orders look the same."""
    if not order_id:
        raise NotFound(SESSION_EXPIRED)
    try:
        order = store_service.get_order(ctx.db, order_id)
    except NotFound:
        raise NotOwner(reason=f"order_id={order_id} missing")
    if str(order.buyer_id) != str(buyer_id):
        raise NotOwner(reason=f"user={buyer_id} is not buyer of order_id={order_id}")
    return order


# ==============================================================================
# CHECKOUT ENTRY (/start order_<id> and the channel Order button)
# ==============================================================================

async def begin_checkout(ctx: BotContext, chat_id, user_id, product_id: str) -> None:
    product = store_service.get_product(ctx.db, product_id)
    if not product.in_stock:
        await ctx.gateway.send_text(chat_id, "This product is currently out of stock.")
        return

    store = ensure_subscription_defaults(ctx.db, store_service.get_store(ctx.db, product.store_id))
    require_active(store)

    ctx.sessions.set(user_id, Step.ORDER_QTY, {"product_id": product.id})
    await ctx.gateway.send_text(
        chat_id,
        f"Ordering: <b>{esc(product.name)}</b>\n\nQuantity? (e.g. 1)",
        keyboards.cancel_menu(),
    )


async def start_command(ctx: BotContext, event: InboundMessage) -> None:
    """/start ends any flow; "/start order_<id>" begins checkout for that product."""
    ctx.sessions.clear(event.user_id)

    payload = event.command_args
    if payload.startswith("order_"):
        await begin_checkout(ctx, event.chat_id, event.user_id, payload[len("order_"):])
        return

    await ctx.gateway.send_text(
        event.chat_id,
        "Welcome to <b>Orderlyy</b>\n\n"
        "Create a store, link your channel, and add products, all inside Telegram.",
        keyboards.main_menu(),
    )


async def order_button(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    ctx.sessions.clear(event.user_id)
    await begin_checkout(ctx, event.chat_id, event.user_id, ref)


# ==============================================================================
# BUYER STEPS
# ==============================================================================

async def order_qty(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    qty = order_lifecycle.parse_quantity(event.text)

    product_id = session.data.get("product_id")
    if not product_id:
        raise NotFound(SESSION_EXPIRED)
    product = store_service.get_product(ctx.db, product_id)
    store = ensure_subscription_defaults(ctx.db, store_service.get_store(ctx.db, product.store_id))

    # Stock and the gate are re-checked inside create_order
    order = order_lifecycle.create_order(ctx.db, store, product, event.user_id, event.username, qty)
    ctx.sessions.clear(event.user_id)

    total = order_lifecycle.order_total(ctx.db, order)
    await notifications.send_payment_instructions(ctx.gateway, event.chat_id, store, product, order, total)
    await notifications.notify_seller_new_order(ctx.gateway, store, product, order)


async def pay_proof(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    order_id = session.data.get("order_id")
    if not order_id:
        raise NotFound(SESSION_EXPIRED)

    if event.photo_file_id:
        proof_file_id, proof_type = event.photo_file_id, ProofType.PHOTO
    elif event.document_file_id:
        proof_file_id, proof_type = event.document_file_id, ProofType.DOCUMENT
    else:
        proof_file_id, proof_type = None, None

    order = _buyer_order(ctx, order_id, event.user_id)
    payment = order_lifecycle.submit_payment(
        ctx.db, order, event.user_id, event.username, proof_file_id, proof_type
    )
    ctx.sessions.clear(event.user_id)

    await ctx.gateway.send_text(
        event.chat_id,
        f"Proof received ✅\nRef: <code>{esc(order.id)}</code>\n\nWaiting for seller confirmation.",
    )

    store = store_service.get_store(ctx.db, order.store_id)
    product = order.product
    await notifications.notify_seller_payment(ctx.gateway, store, product, order, payment)


async def order_address(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    order = _buyer_order(ctx, session.data.get("order_id"), event.user_id)
    order = order_lifecycle.record_delivery_details(ctx.db, order, event.user_id, event.text)
    ctx.sessions.clear(event.user_id)

    await ctx.gateway.send_text(
        event.chat_id,
        "Details received ✅ Seller will deliver/confirm shortly.",
        keyboards.update_delivery_menu(order.id),
    )

    store = store_service.get_store(ctx.db, order.store_id)
    await notifications.notify_seller_delivery_details(ctx.gateway, store, order)


# ==============================================================================
# BUYER CALLBACKS
# ==============================================================================

async def pay_paid(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    order = _buyer_order(ctx, ref, event.user_id)
    if order.status in OrderStatus.PAID_OR_LATER:
        raise AlreadyResolved("This order is already paid.")
    ctx.sessions.set(event.user_id, Step.PAY_PROOF, {"order_id": order.id})
    await ctx.gateway.send_text(
        event.chat_id,
        "Upload proof of payment (screenshot/photo or document).",
        keyboards.cancel_menu(),
    )


async def pay_cancel(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    ctx.sessions.clear(event.user_id)
    await ctx.gateway.send_text(event.chat_id, f"Cancelled. Ref: <code>{esc(ref)}</code>")


async def address_update(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    order = _buyer_order(ctx, ref, event.user_id)
    if order.status == OrderStatus.DELIVERED:
        raise AlreadyResolved("This order has already been delivered.")
    ctx.sessions.set(event.user_id, Step.ORDER_ADDRESS, {"order_id": order.id})
    await ctx.gateway.send_text(
        event.chat_id,
        f"Send updated delivery details for Order <code>{esc(order.id)}</code>.",
        keyboards.cancel_menu(),
    )


# ==============================================================================
# SELLER CALLBACKS
# ==============================================================================

async def pay_approve(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    payment = store_service.get_payment(ctx.db, ref)
    payment, order = order_lifecycle.approve_payment(ctx.db, payment, event.user_id)

    await notifications.prompt_delivery_details(ctx.sessions, ctx.gateway, order)
    await ctx.gateway.send_text(event.chat_id, f"Confirmed ✅\nOrder Ref: <code>{esc(order.id)}</code>")


async def pay_reject(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    payment = store_service.get_payment(ctx.db, ref)
    payment, order = order_lifecycle.reject_payment(ctx.db, payment, event.user_id)

    await notifications.notify_payment_rejected(ctx.gateway, payment)
    await ctx.gateway.send_text(event.chat_id, f"Rejected ❌\nOrder Ref: <code>{esc(order.id)}</code>")


def _ship(stage: str):
    async def handler(ctx: BotContext, event: InboundCallback, ref: str) -> None:
        order = store_service.get_order(ctx.db, ref)
        order = order_lifecycle.set_delivery_status(ctx.db, order, event.user_id, stage)
        label = order_lifecycle.DELIVERY_STAGE_LABELS[order.status]

        await ctx.gateway.send_text(event.chat_id, f"Updated ✅ {label}\nOrder Ref: <code>{esc(order.id)}</code>")
        await notifications.notify_buyer_status(ctx.gateway, order, label)

    handler.__name__ = f"ship_{stage}"
    return handler


ship_packed = _ship("packed")
ship_out = _ship("out")
ship_delivered = _ship("delivered")
