"""
Conversation engine entry points.

handle_message: global commands (/start, /cancel) first, then the sender's
session step picks exactly one step handler. No session means idle.

handle_callback: acknowledge the button press, then dispatch on the structured
payload "<namespace>:<action>[:<ref>]".

BusinessErrors raised by handlers are turned into chat replies here:
    InvalidInput          -> re-prompt, session untouched
    NotFound / Forbidden  -> clear session, terminal notice
    AlreadyResolved       -> notice (session cleared when raised inside a flow)
    OutOfStock            -> clear session, notice
    SubscriptionRequired  -> support keyboard (seller) / "not accepting orders" (buyer)
    UpstreamUnavailable   -> logged; nothing more can be sent
"""
import logging
from typing import Awaitable, Callable, Dict, Tuple

from app.agent.conversation_state import ConversationSession, Flow, Step
from app.agent.notifications import best_effort
from app.core.config import settings
from app.core.exceptions import (
    AlreadyResolved,
    BusinessError,
    Forbidden,
    InvalidInput,
    NotFound,
    OutOfStock,
    SubscriptionRequired,
    UpstreamUnavailable,
)
from app.telegram import handlers_onboarding as onboarding
from app.telegram import handlers_orders as orders
from app.telegram import keyboards
from app.telegram.context import BotContext
from app.telegram.events import CallbackData, InboundCallback, InboundEvent, InboundMessage
from app.telegram.utils import esc

logger = logging.getLogger(__name__)

StepHandler = Callable[[BotContext, InboundMessage, ConversationSession], Awaitable[None]]
CallbackHandler = Callable[[BotContext, InboundCallback, str], Awaitable[None]]

BUYER_FLOWS = {Flow.CHECKOUT, Flow.PROOF_UPLOAD, Flow.ADDRESS_UPDATE}


# ==============================================================================
# DISPATCH TABLES
# ==============================================================================

STEP_HANDLERS: Dict[Step, StepHandler] = {
    Step.CREATE_NAME: onboarding.create_name,
    Step.CREATE_CURRENCY: onboarding.create_currency,
    Step.CREATE_DELIVERY: onboarding.create_delivery,
    Step.LINK_CHANNEL: onboarding.link_channel,
    Step.PRODUCT_PHOTO: onboarding.product_photo,
    Step.PRODUCT_NAME: onboarding.product_name,
    Step.PRODUCT_PRICE: onboarding.product_price,
    Step.PRODUCT_DESC: onboarding.product_desc,
    Step.PRODUCT_STOCK: onboarding.product_stock,
    Step.ORDER_QTY: orders.order_qty,
    Step.PAY_PROOF: orders.pay_proof,
    Step.ORDER_ADDRESS: orders.order_address,
}

if set(STEP_HANDLERS) != set(Step):
    raise RuntimeError(f"steps without a handler: {sorted(s.value for s in set(Step) - set(STEP_HANDLERS))}")


async def _cancel_flow(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    ctx.sessions.clear(event.user_id)
    await ctx.gateway.send_text(event.chat_id, "Cancelled.", keyboards.main_menu())


# (namespace, action) -> (handler, acting as buyer)
CALLBACK_HANDLERS: Dict[Tuple[str, str], Tuple[CallbackHandler, bool]] = {
    ("menu", "create"): (onboarding.menu_create, False),
    ("menu", "link"): (onboarding.menu_link, False),
    ("menu", "add"): (onboarding.menu_add_product, False),
    ("menu", "dashboard"): (onboarding.menu_dashboard, False),
    ("menu", "sub"): (onboarding.menu_subscription, False),
    ("flow", "cancel"): (_cancel_flow, False),
    ("order", "start"): (orders.order_button, True),
    ("pay", "paid"): (orders.pay_paid, True),
    ("pay", "cancel"): (orders.pay_cancel, True),
    ("addr", "update"): (orders.address_update, True),
    ("pay", "approve"): (orders.pay_approve, False),
    ("pay", "reject"): (orders.pay_reject, False),
    ("ship", "packed"): (orders.ship_packed, False),
    ("ship", "out"): (orders.ship_out, False),
    ("ship", "delivered"): (orders.ship_delivered, False),
}

# Callbacks whose ref names an entity
REF_REQUIRED = {"order", "pay", "addr", "ship"}


# ==============================================================================
# ERROR RENDERING
# ==============================================================================

async def _subscription_notice(ctx: BotContext, chat_id, exc: SubscriptionRequired, as_buyer: bool) -> None:
    if as_buyer:
        await ctx.gateway.send_text(chat_id, "This store is currently not accepting new orders.")
        return
    expiry = f"\nExpiry: <code>{esc(exc.expires_at)}</code>" if exc.expires_at else ""
    await ctx.gateway.send_text(
        chat_id,
        f"🔒 Subscription inactive/expired.{expiry}\n\n"
        f"To activate, message support: @{esc(settings.SUPPORT_USERNAME)}",
        keyboards.support_menu(),
    )


async def _render_errors(ctx: BotContext, event: InboundEvent, action: Awaitable, as_buyer: bool, in_flow: bool) -> None:
    try:
        await action
    except InvalidInput as e:
        await ctx.gateway.send_text(event.chat_id, e.message)
    except SubscriptionRequired as e:
        if in_flow:
            ctx.sessions.clear(event.user_id)
        await _subscription_notice(ctx, event.chat_id, e, as_buyer)
    except (NotFound, Forbidden) as e:
        logger.info(f"[Chat] {e.code} for user_id={event.user_id}: {e.reason or e.message}")
        ctx.sessions.clear(event.user_id)
        await ctx.gateway.send_text(event.chat_id, e.message)
    except (AlreadyResolved, OutOfStock) as e:
        logger.info(f"[Chat] {e.code} for user_id={event.user_id}: {e.reason or e.message}")
        if in_flow or isinstance(e, OutOfStock):
            ctx.sessions.clear(event.user_id)
        await ctx.gateway.send_text(event.chat_id, e.message)
    except UpstreamUnavailable as e:
        logger.warning(f"[Chat] Telegram unavailable while handling user_id={event.user_id}: {e.reason}")
    except BusinessError as e:
        logger.warning(f"[Chat] Unhandled {e.code} for user_id={event.user_id}: {e.reason or e.message}")
        await ctx.gateway.send_text(event.chat_id, e.message)


async def _run(ctx: BotContext, event: InboundEvent, action: Awaitable, as_buyer: bool, in_flow: bool) -> None:
    try:
        await _render_errors(ctx, event, action, as_buyer, in_flow)
    except UpstreamUnavailable as e:
        # Raised while sending the error notice itself
        logger.warning(f"[Chat] Could not notify user_id={event.user_id}: {e.reason}")


# ==============================================================================
# ENTRY POINTS
# ==============================================================================

async def handle_message(ctx: BotContext, event: InboundMessage) -> None:
    if event.command == "cancel":
        ctx.sessions.clear(event.user_id)
        await ctx.gateway.send_text(event.chat_id, "Cancelled.", keyboards.main_menu())
        return

    if event.command == "start":
        await _run(ctx, event, orders.start_command(ctx, event), as_buyer=True, in_flow=False)
        return

    session = ctx.sessions.get(event.user_id)
    if session is None:
        await ctx.gateway.send_text(
            event.chat_id,
            "Use the menu below, or open a product link to order.",
            keyboards.main_menu(),
        )
        return

    handler = STEP_HANDLERS[session.step]
    logger.info(f"[Chat] user_id={event.user_id} step={session.step.value} -> {handler.__name__}")
    await _run(
        ctx,
        event,
        handler(ctx, event, session),
        as_buyer=session.flow in BUYER_FLOWS,
        in_flow=True,
    )


async def handle_callback(ctx: BotContext, event: InboundCallback) -> None:
    # Acknowledge first so the client stops its spinner even if handling fails
    await best_effort(f"answer callback {event.callback_id}", ctx.gateway.answer_callback(event.callback_id))

    data = CallbackData.parse(event.data)
    route = CALLBACK_HANDLERS.get((data.namespace, data.action)) if data else None
    if route is None or (data.namespace in REF_REQUIRED and not data.ref):
        logger.info(f"[Chat] Ignoring unknown callback {event.data!r} from user_id={event.user_id}")
        return

    handler, as_buyer = route
    logger.info(f"[Chat] user_id={event.user_id} callback={data} -> {handler.__name__}")
    await _run(ctx, event, handler(ctx, event, data.ref), as_buyer=as_buyer, in_flow=False)


async def handle_event(ctx: BotContext, event: InboundEvent) -> None:
    if isinstance(event, InboundCallback):
        await handle_callback(ctx, event)
    else:
        await handle_message(ctx, event)
