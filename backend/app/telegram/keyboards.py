"""Inline keyboards. Callback payloads follow "<namespace>:<action>[:<id>]"."""
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from app.core.config import settings


def main_menu() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Create store", callback_data="menu:create")],
        [
            InlineKeyboardButton("Link channel", callback_data="menu:link"),
            InlineKeyboardButton("Add product", callback_data="menu:add"),
        ],
        [InlineKeyboardButton("Dashboard link", callback_data="menu:dashboard")],
        [InlineKeyboardButton("Subscription / Activate", callback_data="menu:sub")],
    ])


def cancel_menu() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Cancel", callback_data="flow:cancel")]])


def support_menu() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Contact support", url=settings.support_link)]])


def pay_menu(order_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("I've paid ✅", callback_data=f"pay:paid:{order_id}")],
        [InlineKeyboardButton("Cancel", callback_data=f"pay:cancel:{order_id}")],
    ])


def seller_review_menu(payment_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("✅ Confirm payment", callback_data=f"pay:approve:{payment_id}")],
        [InlineKeyboardButton("❌ Reject", callback_data=f"pay:reject:{payment_id}")],
    ])


def update_delivery_menu(order_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Update delivery details", callback_data=f"addr:update:{order_id}")],
    ])


def seller_delivery_menu(order_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("📦 Packed", callback_data=f"ship:packed:{order_id}"),
            InlineKeyboardButton("🚚 Out", callback_data=f"ship:out:{order_id}"),
        ],
        [InlineKeyboardButton("✅ Delivered", callback_data=f"ship:delivered:{order_id}")],
    ])


def order_button(product_id: str, deep_link: Optional[str]) -> InlineKeyboardMarkup:
    """Order button under a channel post: deep link when BOT_USERNAME is known."""
    if deep_link:
        return InlineKeyboardMarkup([[InlineKeyboardButton("Order", url=deep_link)]])
    return InlineKeyboardMarkup([[InlineKeyboardButton("Order", callback_data=f"order:start:{product_id}")]])
