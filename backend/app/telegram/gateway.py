"""
Outbound Telegram calls behind one small interface.

Every failure surfaces as UpstreamUnavailable so handlers deal with a single
error type. Tests swap this class for a recording fake.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from telegram import Bot, InlineKeyboardMarkup, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import TelegramError

from app.core.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatRef:
    id: str
    username: str


class TelegramGateway:
    def __init__(self, bot: Optional[Bot]):
        self._bot = bot

    def _require_bot(self) -> Bot:
        if self._bot is None:
            raise UpstreamUnavailable(reason="Telegram bot not configured (TELEGRAM_BOT_TOKEN missing)")
        return self._bot

    async def send_text(self, chat_id, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None):
        bot = self._require_bot()
        try:
            return await bot.send_message(
                chat_id=int(chat_id) if str(chat_id).lstrip("-").isdigit() else chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
                reply_markup=reply_markup,
            )
        except TelegramError as e:
            raise UpstreamUnavailable(reason=f"sendMessage to {chat_id}: {e}") from e

    async def send_photo(self, chat_id, photo: str, caption: str, reply_markup: Optional[InlineKeyboardMarkup] = None):
        bot = self._require_bot()
        try:
            return await bot.send_photo(
                chat_id=int(chat_id) if str(chat_id).lstrip("-").isdigit() else chat_id,
                photo=photo,
                caption=caption,
                parse_mode=ParseMode.HTML,
                reply_markup=reply_markup,
            )
        except TelegramError as e:
            raise UpstreamUnavailable(reason=f"sendPhoto to {chat_id}: {e}") from e

    async def answer_callback(self, callback_id: str) -> None:
        bot = self._require_bot()
        try:
            await bot.answer_callback_query(callback_query_id=callback_id)
        except TelegramError as e:
            raise UpstreamUnavailable(reason=f"answerCallbackQuery: {e}") from e

    async def resolve_chat(self, ref) -> ChatRef:
        """Resolve an @username or numeric id to a chat."""
        bot = self._require_bot()
        try:
            chat = await bot.get_chat(chat_id=ref)
        except TelegramError as e:
            raise UpstreamUnavailable(reason=f"getChat {ref}: {e}") from e
        return ChatRef(id=str(chat.id), username=chat.username or "")

    async def member_status(self, chat_id, user_id) -> str:
        """ChatMember status: creator, administrator, member, left, ..."""
        bot = self._require_bot()
        try:
            member = await bot.get_chat_member(chat_id=chat_id, user_id=int(user_id))
        except TelegramError as e:
            raise UpstreamUnavailable(reason=f"getChatMember {chat_id}/{user_id}: {e}") from e
        return str(member.status)

    async def bot_user_id(self) -> int:
        bot = self._require_bot()
        try:
            me = await bot.get_me()
        except TelegramError as e:
            raise UpstreamUnavailable(reason=f"getMe: {e}") from e
        return me.id
