from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from core.models import InboundMessage


@dataclass(slots=True)
class ParsedUpdate:
    kind: str
    chat_type: str = ""
    message: Optional[InboundMessage] = None

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"


def parse_update(update: dict[str, Any]) -> ParsedUpdate:
    callback = update.get("callback_query")
    if isinstance(callback, dict):
        return _parse_callback(callback)
    message = update.get("message")
    if isinstance(message, dict):
        return _parse_message(message)
    return ParsedUpdate(kind="ignored")


def _parse_message(message: dict[str, Any]) -> ParsedUpdate:
    chat = message.get("chat") or {}
    sender = message.get("from") or {}
    subject_id = _id_text(sender.get("id"))
    channel_id = _id_text(chat.get("id"))
    chat_type = str(chat.get("type", "") or "")
    if not subject_id or not channel_id:
        return ParsedUpdate(kind="ignored", chat_type=chat_type)

    text = str(message.get("text") or message.get("caption") or "")
    media_ref = largest_photo_file_id(message.get("photo"))
    reply_to = message.get("reply_to_message") or {}
    inbound = InboundMessage(
        subject_id=subject_id,
        channel_id=channel_id,
        text=text,
        media_ref=media_ref,
        reply_to_ref=_id_text(reply_to.get("message_id")) or None,
        message_ref=_id_text(message.get("message_id")) or None,
    )
    if not text.strip() and media_ref is None:
        return ParsedUpdate(kind="unsupported", chat_type=chat_type, message=inbound)
    return ParsedUpdate(kind="message", chat_type=chat_type, message=inbound)


def _parse_callback(callback: dict[str, Any]) -> ParsedUpdate:
    sender = callback.get("from") or {}
    message = callback.get("message") or {}
    chat = message.get("chat") or {}
    subject_id = _id_text(sender.get("id"))
    # inline-mode callbacks carry no chat; answer in the user's private chat
    channel_id = _id_text(chat.get("id")) or subject_id
    chat_type = str(chat.get("type", "") or "private")
    if not subject_id:
        return ParsedUpdate(kind="ignored", chat_type=chat_type)
    inbound = InboundMessage(
        subject_id=subject_id,
        channel_id=channel_id,
        callback_data=str(callback.get("data") or ""),
        callback_id=_id_text(callback.get("id")) or None,
        message_ref=_id_text(message.get("message_id")) or None,
    )
    return ParsedUpdate(kind="callback", chat_type=chat_type, message=inbound)


def largest_photo_file_id(photo: Any) -> str | None:
    if not isinstance(photo, list) or not photo:
        return None
    sizes = [item for item in photo if isinstance(item, dict) and item.get("file_id")]
    if not sizes:
        return None
    # Telegram lists sizes in ascending order
    return str(sizes[-1]["file_id"])


def _id_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()
