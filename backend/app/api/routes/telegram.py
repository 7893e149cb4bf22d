"""Telegram webhook. Always answers {"ok": true}; processing happens after the response."""
import hmac
import logging

from fastapi import APIRouter, BackgroundTasks, Header, Request
from typing import Optional

from app.core.config import settings
from app.telegram.bot import process_update

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
):
    if settings.TELEGRAM_WEBHOOK_SECRET and not hmac.compare_digest(
        x_telegram_bot_api_secret_token or "", settings.TELEGRAM_WEBHOOK_SECRET
    ):
        logger.warning("[Webhook] Secret token mismatch; update ignored")
        return {"ok": True}

    try:
        payload = await request.json()
    except ValueError:
        logger.warning("[Webhook] Body is not JSON; ignored")
        return {"ok": True}

    background_tasks.add_task(process_update, payload)
    return {"ok": True}
