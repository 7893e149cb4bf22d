"""
Seller-side conversation flows: store creation, channel linking, product entry,
and the main-menu callbacks.

Step handlers take (ctx, event, session); callback handlers take (ctx, event, ref).
Errors are raised as BusinessError and rendered by the dispatcher in
app.telegram.handlers, so these functions only describe the happy path plus
explicit re-prompts.
"""
import logging
from typing import Optional

from app.agent.conversation_state import ConversationSession, Step
from app.agent.notifications import publish_product
from app.core.config import settings
from app.core.exceptions import InvalidInput, NotFound, UpstreamUnavailable
from app.models.store import Store
from app.services import store_service
from app.services.subscription import ensure_subscription_defaults, require_active, subscription_info
from app.telegram import keyboards
from app.telegram.context import BotContext
from app.telegram.events import InboundCallback, InboundMessage
from app.telegram.utils import dashboard_link, esc

logger = logging.getLogger(__name__)

ADMIN_STATUSES = ("creator", "administrator")
YES_ANSWERS = ("yes", "y")
NO_ANSWERS = ("no", "n")


def owned_store(ctx: BotContext, user_id) -> Optional[Store]:
    """The user's store with subscription defaults backfilled, or None."""
    store = store_service.get_store_for_owner(ctx.db, user_id)
    return ensure_subscription_defaults(ctx.db, store)


async def _create_store_first(ctx: BotContext, chat_id, user_id) -> None:
    ctx.sessions.clear(user_id)
    await ctx.gateway.send_text(chat_id, "Create a store first.", keyboards.main_menu())


# ==============================================================================
# MENU CALLBACKS
# ==============================================================================

async def menu_create(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    store = store_service.get_store_for_owner(ctx.db, event.user_id)
    if store:
        await ctx.gateway.send_text(
            event.chat_id,
            f"You already have a store: <b>{esc(store.name)}</b>",
            keyboards.main_menu(),
        )
        return
    ctx.sessions.set(event.user_id, Step.CREATE_NAME, {})
    await ctx.gateway.send_text(event.chat_id, "Store name?", keyboards.cancel_menu())


async def menu_subscription(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    store = owned_store(ctx, event.user_id)
    if not store:
        await ctx.gateway.send_text(event.chat_id, "Create a store first.", keyboards.main_menu())
        return

    info = subscription_info(store)
    status_label = "✅ Active" if info["active"] else "🔒 Inactive/Expired"
    expiry = f"<code>{esc(info['expires_at'])}</code>" if info["expires_at"] else "-"
    await ctx.gateway.send_text(
        event.chat_id,
        f"<b>Subscription</b>\n"
        f"Status: <b>{status_label}</b>\n"
        f"Plan: <b>{esc(info['status'])}</b>\n"
        f"Expiry: {expiry}\n\n"
        f"To activate, message support: @{esc(settings.SUPPORT_USERNAME)}",
        keyboards.support_menu(),
    )


async def menu_link(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    store = owned_store(ctx, event.user_id)
    if not store:
        await _create_store_first(ctx, event.chat_id, event.user_id)
        return
    require_active(store)

    ctx.sessions.set(event.user_id, Step.LINK_CHANNEL, {})
    await ctx.gateway.send_text(
        event.chat_id,
        "Send your channel @username OR forward a message from your channel.\n\n"
        "Also: add me as <b>Admin</b> in the channel first.",
        keyboards.cancel_menu(),
    )


async def menu_add_product(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    store = owned_store(ctx, event.user_id)
    if not store:
        await _create_store_first(ctx, event.chat_id, event.user_id)
        return
    require_active(store)
    if not store.channel_id:
        await ctx.gateway.send_text(event.chat_id, "Link your channel first.", keyboards.main_menu())
        return

    ctx.sessions.set(event.user_id, Step.PRODUCT_PHOTO, {})
    await ctx.gateway.send_text(event.chat_id, "Send product photo, or type /skip", keyboards.cancel_menu())


async def menu_dashboard(ctx: BotContext, event: InboundCallback, ref: str) -> None:
    store = owned_store(ctx, event.user_id)
    if not store:
        await ctx.gateway.send_text(event.chat_id, "Create a store first.", keyboards.main_menu())
        return
    require_active(store)
    await ctx.gateway.send_text(event.chat_id, f"Dashboard link:\n{esc(dashboard_link(store.owner_token))}")


# ==============================================================================
# STORE CREATION: create:name -> create:currency -> create:delivery
# ==============================================================================

async def create_name(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    name = event.text
    if not name or name.startswith("/"):
        raise InvalidInput("Send your store name.")
    ctx.sessions.set(event.user_id, Step.CREATE_CURRENCY, {"name": name})
    await ctx.gateway.send_text(event.chat_id, "Currency? (e.g. ₦, $, £)")


async def create_currency(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    currency = event.text or "₦"
    ctx.sessions.set(
        event.user_id,
        Step.CREATE_DELIVERY,
        {"name": session.data.get("name"), "currency": currency},
    )
    await ctx.gateway.send_text(
        event.chat_id,
        'Delivery note? (short text like: "Pickup at gate, delivery available")',
    )


async def create_delivery(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    name = session.data.get("name")
    if not name:
        raise NotFound("Session expired. Tap Create store to start again.")

    store = store_service.create_store(
        ctx.db,
        owner_id=event.user_id,
        name=name,
        currency=session.data.get("currency") or "₦",
        delivery_note=event.text,
    )
    ctx.sessions.clear(event.user_id)

    await ctx.gateway.send_text(
        event.chat_id,
        f"Store created ✅\n\n"
        f"<b>{esc(store.name)}</b>\n"
        f"Dashboard: {esc(dashboard_link(store.owner_token))}\n\n"
        f"Free trial: <b>{settings.FREE_TRIAL_DAYS} days</b>.\n\n"
        f"Next: tap <b>Link channel</b> and add me as admin in your channel.",
        keyboards.main_menu(),
    )


# ==============================================================================
# CHANNEL LINKING: link:channel
# ==============================================================================

async def link_channel(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    """
    Accept @username, a numeric id, or a post forwarded from the channel.
    Both the sender and the bot must be channel admins. Any failure re-prompts.
    """
    channel_ref = event.text
    if not channel_ref and event.forward_chat_id is not None:
        channel_ref = str(event.forward_chat_id)
    if not channel_ref:
        raise InvalidInput("Send your channel @username OR forward a message from your channel.")

    store = owned_store(ctx, event.user_id)
    if not store:
        await _create_store_first(ctx, event.chat_id, event.user_id)
        return
    require_active(store)

    try:
        chat = await ctx.gateway.resolve_chat(channel_ref)
        member_status = await ctx.gateway.member_status(chat.id, event.user_id)
        if member_status not in ADMIN_STATUSES:
            raise InvalidInput("You must be an admin of that channel.")
        bot_id = await ctx.gateway.bot_user_id()
        bot_status = await ctx.gateway.member_status(chat.id, bot_id)
        if bot_status not in ADMIN_STATUSES:
            raise InvalidInput("Add me as <b>Admin</b> in your channel first, then try again.")
    except UpstreamUnavailable as e:
        logger.info(f"[Onboarding] Channel lookup failed for {channel_ref!r}: {e.reason}")
        raise InvalidInput("Could not link channel. Make sure it's valid and I am admin there.") from e

    store_service.link_channel(ctx.db, store, chat.id, chat.username)
    ctx.sessions.clear(event.user_id)
    await ctx.gateway.send_text(event.chat_id, "Channel linked ✅\nNow you can add products.", keyboards.main_menu())


# ==============================================================================
# PRODUCT ENTRY: photo -> name -> price -> desc -> stock
# ==============================================================================

async def product_photo(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    store = owned_store(ctx, event.user_id)
    if not store:
        await _create_store_first(ctx, event.chat_id, event.user_id)
        return
    require_active(store)

    if event.command == "skip":
        photo_file_id = None
    elif event.photo_file_id:
        photo_file_id = event.photo_file_id
    else:
        raise InvalidInput("Send a product photo, or type /skip")

    ctx.sessions.set(event.user_id, Step.PRODUCT_NAME, {"store_id": store.id, "photo_file_id": photo_file_id})
    await ctx.gateway.send_text(event.chat_id, "Product name?")


async def product_name(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    if not event.text:
        raise InvalidInput("Product name is required.")
    ctx.sessions.set(event.user_id, Step.PRODUCT_PRICE, {**session.data, "name": event.text})
    await ctx.gateway.send_text(event.chat_id, "Price? (numbers only)")


async def product_price(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    price = store_service.parse_price(event.text)
    ctx.sessions.set(event.user_id, Step.PRODUCT_DESC, {**session.data, "price": str(price)})
    await ctx.gateway.send_text(event.chat_id, "Short description? (or type /skip)")


async def product_desc(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    description = "" if event.command == "skip" else event.text
    ctx.sessions.set(event.user_id, Step.PRODUCT_STOCK, {**session.data, "description": description})
    await ctx.gateway.send_text(event.chat_id, "In stock? Reply yes or no")


async def product_stock(ctx: BotContext, event: InboundMessage, session: ConversationSession) -> None:
    answer = event.text.lower()
    if answer in YES_ANSWERS:
        in_stock = True
    elif answer in NO_ANSWERS:
        in_stock = False
    else:
        raise InvalidInput("In stock? Reply yes or no")

    store = store_service.get_store(ctx.db, session.data.get("store_id"))
    if str(store.owner_id) != str(event.user_id):
        raise NotFound("Store not found.", reason=f"user={event.user_id} store_id={store.id}")
    ensure_subscription_defaults(ctx.db, store)

    product = store_service.create_product(
        ctx.db,
        store,
        name=session.data.get("name"),
        price=session.data.get("price"),
        description=session.data.get("description", ""),
        in_stock=in_stock,
        photo_file_id=session.data.get("photo_file_id"),
    )
    ctx.sessions.clear(event.user_id)

    await publish_product(ctx.gateway, store, product)
    await ctx.gateway.send_text(event.chat_id, "Product added ✅", keyboards.main_menu())
