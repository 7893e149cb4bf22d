"""
Inbound webhook payloads -> typed events.

Raw JSON is parsed with telegram.Update.de_json, then narrowed to the fields the
conversation engine uses. Anything else (edited messages, channel posts,
messages without a sender) yields None and is acknowledged without processing.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from telegram import Bot, Message, MessageEntity, MessageOriginChannel, Update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    update_id: int
    chat_id: int
    user_id: int
    username: str = ""
    text: str = ""
    photo_file_id: Optional[str] = None  # largest size of the photo set
    document_file_id: Optional[str] = None
    forward_chat_id: Optional[int] = None  # set when forwarded from a channel
    command: str = ""  # leading bot command without "/" or "@botname"
    command_args: str = ""


@dataclass(frozen=True)
class InboundCallback:
    update_id: int
    callback_id: str
    chat_id: int
    user_id: int
    username: str = ""
    data: str = ""


InboundEvent = Union[InboundMessage, InboundCallback]


@dataclass(frozen=True)
class CallbackData:
    """Structured callback payload: "<namespace>:<action>[:<ref>]"."""

    namespace: str
    action: str
    ref: str = ""

    @classmethod
    def parse(cls, data: str) -> Optional["CallbackData"]:
        parts = (data or "").split(":", 2)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            return None
        if parts[0] == "order" and len(parts) == 2:
            # Channel posts published before callbacks carried an action
            return cls(namespace="order", action="start", ref=parts[1])
        return cls(namespace=parts[0], action=parts[1], ref=parts[2] if len(parts) == 3 else "")

    def __str__(self) -> str:
        return f"{self.namespace}:{self.action}:{self.ref}" if self.ref else f"{self.namespace}:{self.action}"


def _leading_command(message: Message) -> Tuple[str, str]:
    """("start", "order_42") for "/start@OrderlyyBot order_42", read from Telegram's bot_command entity."""
    if not message.text:
        return "", ""
    for entity, value in message.parse_entities([MessageEntity.BOT_COMMAND]).items():
        if entity.offset == 0:
            return value[1:].split("@", 1)[0].lower(), message.text[entity.length:].strip()
    return "", ""


def parse_update(payload: dict, bot: Optional[Bot] = None) -> Optional[InboundEvent]:
    if not isinstance(payload, dict):
        return None
    try:
        update = Update.de_json(payload, bot)
    except (KeyError, TypeError, ValueError):
        logger.warning("[Webhook] Malformed update payload", exc_info=True)
        return None
    if update is None:
        return None

    message = update.message
    if message is not None and message.from_user is not None:
        photo_file_id = message.photo[-1].file_id if message.photo else None
        document_file_id = message.document.file_id if message.document else None
        forward_chat_id = None
        if isinstance(message.forward_origin, MessageOriginChannel):
            forward_chat_id = message.forward_origin.chat.id
        command, command_args = _leading_command(message)
        return InboundMessage(
            update_id=update.update_id,
            chat_id=message.chat.id,
            user_id=message.from_user.id,
            username=message.from_user.username or "",
            text=(message.text or "").strip(),
            photo_file_id=photo_file_id,
            document_file_id=document_file_id,
            forward_chat_id=forward_chat_id,
            command=command,
            command_args=command_args,
        )

    callback = update.callback_query
    if callback is not None:
        return InboundCallback(
            update_id=update.update_id,
            callback_id=callback.id,
            # Buttons live in private chats, so the sender's id is the chat id
            chat_id=callback.from_user.id,
            user_id=callback.from_user.id,
            username=callback.from_user.username or "",
            data=callback.data or "",
        )

    return None
