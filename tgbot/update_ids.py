from __future__ import annotations

from typing import Any


def build_update_id(update: dict[str, Any]) -> str:
    update_id = update.get("update_id")
    if update_id is not None and str(update_id).strip():
        return f"update:{str(update_id).strip()}"
    callback = update.get("callback_query") or {}
    if isinstance(callback, dict) and str(callback.get("id", "") or "").strip():
        return f"callback:{str(callback['id']).strip()}"
    message = update.get("message") or {}
    if not isinstance(message, dict):
        return ""
    chat_id = str((message.get("chat") or {}).get("id", "") or "").strip()
    message_id = str(message.get("message_id", "") or "").strip()
    if not chat_id or not message_id:
        return ""
    return f"message:{chat_id}:{message_id}"
