"""
Telegram Bot lifecycle and the webhook processing pipeline.

start_bot/stop_bot are called from the FastAPI lifespan. The Application runs in
webhook mode (no Updater): FastAPI receives updates and process_update dispatches
them through the inbox and the conversation engine. Without TELEGRAM_BOT_TOKEN
the bot stays disabled: the API still serves, and every outbound call raises
UpstreamUnavailable.
"""
import asyncio
import logging
from typing import Optional

from telegram import Bot, error
from telegram.ext import Application

from app.agent.conversation_state import SessionStore
from app.core.config import settings
from app.db.session import ConversationSessionLocal, SessionLocal
from app.services.inbox import claim_update
from app.telegram.context import BotContext
from app.telegram.events import InboundCallback, parse_update
from app.telegram.gateway import TelegramGateway
from app.telegram.handlers import handle_event

logger = logging.getLogger(__name__)

_bot_app: Optional[Application] = None

ALLOWED_UPDATES = ["message", "callback_query"]


async def _set_webhook_with_retry(bot: Bot, url: str, max_retries: int = 3, initial_backoff: int = 2) -> bool:
    for attempt in range(max_retries):
        try:
            logger.info(f"[Telegram] Registering webhook (attempt {attempt + 1}/{max_retries})...")
            await bot.set_webhook(
                url=url,
                secret_token=settings.TELEGRAM_WEBHOOK_SECRET or None,
                allowed_updates=ALLOWED_UPDATES,
            )
            logger.info(f"[Telegram] ✓ Webhook registered: {url}")
            return True
        except error.RetryAfter as e:
            wait = e.retry_after.total_seconds() if hasattr(e.retry_after, "total_seconds") else e.retry_after
            logger.warning(f"[Telegram] ⚠ Rate limited, retrying in {wait}s")
            await asyncio.sleep(wait)
        except error.NetworkError as e:
            if attempt < max_retries - 1:
                backoff = initial_backoff * (2 ** attempt)
                logger.warning(f"[Telegram] ⚠ Network error: {e}. Retrying in {backoff}s...")
                await asyncio.sleep(backoff)
            else:
                logger.error(f"[Telegram] ✗ Webhook registration failed after {max_retries} attempts: {e}")
        except error.TelegramError as e:
            logger.error(f"[Telegram] ✗ Webhook registration rejected: {e}")
            return False
    return False


async def start_bot() -> None:
    global _bot_app
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("[Telegram] TELEGRAM_BOT_TOKEN not set; bot disabled")
        return

    application = Application.builder().token(settings.TELEGRAM_BOT_TOKEN).updater(None).build()
    try:
        await application.initialize()
        await application.start()
    except error.TelegramError as e:
        logger.error(f"[Telegram] ✗ Bot initialization failed: {e}")
        return
    _bot_app = application
    logger.info(f"[Telegram] ✓ Bot ready as @{application.bot.username}")

    if settings.WEBHOOK_BASE_URL:
        await _set_webhook_with_retry(application.bot, f"{settings.WEBHOOK_BASE_URL}/telegram/webhook")


async def stop_bot() -> None:
    global _bot_app
    if _bot_app is None:
        return
    try:
        await _bot_app.stop()
        await _bot_app.shutdown()
    except error.TelegramError as e:
        logger.warning(f"[Telegram] Shutdown error: {e}")
    _bot_app = None


def get_bot() -> Optional[Bot]:
    return _bot_app.bot if _bot_app else None


def get_gateway() -> TelegramGateway:
    return TelegramGateway(get_bot())


def get_session_store() -> SessionStore:
    return SessionStore(ConversationSessionLocal, ttl_seconds=settings.SESSION_TTL_SECONDS)


async def process_update(payload: dict) -> None:
    """
    Run one webhook delivery: parse, drop redeliveries, dispatch.

    Runs after the HTTP response was sent, so failures are logged here and never
    reach Telegram (which would only redeliver).
    """
    event = parse_update(payload, get_bot())
    if event is None:
        return

    db = SessionLocal()
    try:
        kind = "callback" if isinstance(event, InboundCallback) else "message"
        if not claim_update(db, event.update_id, kind):
            return
        ctx = BotContext(db=db, sessions=get_session_store(), gateway=get_gateway())
        await handle_event(ctx, event)
    except Exception:
        logger.exception(f"[Webhook] Failed to process update_id={event.update_id}")
    finally:
        db.close()
