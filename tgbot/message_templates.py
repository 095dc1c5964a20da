from __future__ import annotations

from typing import Any

from core.enums import Affordance
from core.models import Prompt
from tgbot.keyboards import force_reply, inline_button, inline_keyboard

ACTION_LABELS = {
    Affordance.SKIP: "⏭ 跳過",
    Affordance.DONE: "✅ 完成",
    Affordance.PAUSE: "💾 暫存",
    Affordance.CANCEL: "❌ 取消",
    Affordance.CONFIRM: "✅ 確認",
    Affordance.RESUME: "▶️ 繼續",
    Affordance.RESTART: "🔄 重新開始",
}

REPLY_HINT_TEXT = "↩️ 請直接回覆此訊息輸入內容"
PRIVATE_CHAT_ONLY_TEXT = "此機器人僅支援私人對話。"
NOT_ALLOWED_TEXT = "此帳號目前無法使用商品上架功能。"
PROCESSING_FAILED_TEXT = "❌ 處理失敗，請稍後再試。"
UNSUPPORTED_MESSAGE_TEXT = "❌ 不支援的訊息類型，請輸入文字或上傳圖片。"


def callback_data_for(action: Affordance, prompt: Prompt) -> str:
    # skip/done buttons carry the step so stale presses can be detected
    if action in {Affordance.SKIP, Affordance.DONE}:
        state = prompt.state.value if prompt.state is not None else ""
        return f"{action.value}_{state}"
    return action.value


def build_action_keyboard(prompt: Prompt) -> dict[str, Any] | None:
    if not prompt.actions:
        return None
    buttons = [inline_button(ACTION_LABELS[action], callback_data_for(action, prompt)) for action in prompt.actions]
    return inline_keyboard(buttons)


def build_prompt_messages(prompt: Prompt) -> list[tuple[str, dict[str, Any] | None]]:
    """Render a prompt as the Bot API messages that carry it.

    Telegram allows one reply markup per message, so a text-entry prompt
    with actions becomes the keyboard message followed by a force-reply hint.
    """
    keyboard = build_action_keyboard(prompt)
    if not prompt.force_reply:
        return [(prompt.text, keyboard)]
    if keyboard is None:
        return [(prompt.text, force_reply())]
    return [(prompt.text, keyboard), (REPLY_HINT_TEXT, force_reply(_placeholder(prompt.text)))]


def _placeholder(text: str) -> str:
    line = (text or "").splitlines()[-1] if text else ""
    return line.rstrip("：:").strip()
