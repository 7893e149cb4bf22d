"""
Telegram formatting helpers: HTML escaping, money, links, buyer labels.
"""
from decimal import Decimal
from html import escape
from typing import Optional
from urllib.parse import quote

from telegram.helpers import create_deep_linked_url

from app.core.config import settings


def esc(value) -> str:
    """HTML-escape anything for parse_mode=HTML."""
    return escape(str(value if value is not None else ""), quote=True)


def format_amount(amount) -> str:
    """2500 -> "2500", 2500.5 -> "2500.50"."""
    value = Decimal(str(amount if amount is not None else 0))
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value:.2f}"


def money(currency: Optional[str], amount) -> str:
    return f"{currency or ''}{format_amount(amount)}"


def dashboard_link(owner_token: str) -> str:
    return f"{settings.APP_BASE_URL}/?token={quote(owner_token, safe='')}"


def order_deep_link(product_id: str) -> Optional[str]:
    """t.me deep link that opens the bot with /start order_<id>; None without BOT_USERNAME."""
    if not settings.BOT_USERNAME:
        return None
    return create_deep_linked_url(settings.BOT_USERNAME, f"order_{product_id}")


def buyer_label(username: Optional[str], user_id=None) -> str:
    """@username when known, otherwise the numeric id (or "(unknown)")."""
    if username:
        return f"@{esc(username)}"
    if user_id is not None:
        return esc(user_id)
    return "(unknown)"
