from __future__ import annotations

from core.models import Prompt
from tgbot.bot_client import TelegramBotClient
from tgbot.message_templates import build_prompt_messages


class TelegramChatGateway:
    def __init__(self, bot_client: TelegramBotClient) -> None:
        self.bot_client = bot_client

    def send_prompt(self, channel_id: str, prompt: Prompt) -> str | None:
        """Send every message of a prompt and return the id of the first one.

        Later messages of the same prompt have higher ids, so a reply to any
        of them is at or above the returned ref.
        """
        first_ref: str | None = None
        for text, markup in build_prompt_messages(prompt):
            message_ref = _message_ref(self.bot_client.send_message(channel_id, text, reply_markup=markup))
            if first_ref is None:
                first_ref = message_ref
        return first_ref

    def send_text(self, channel_id: str, text: str) -> str | None:
        return _message_ref(self.bot_client.send_message(channel_id, text))


def _message_ref(result: dict | None) -> str | None:
    if not isinstance(result, dict):
        return None
    message_id = result.get("message_id")
    return None if message_id is None else str(message_id)
