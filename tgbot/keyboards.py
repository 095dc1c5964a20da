from __future__ import annotations

from typing import Any

MAX_BUTTONS_PER_ROW = 2
MAX_CALLBACK_DATA_BYTES = 64


def inline_button(label: str, data: str) -> dict[str, Any]:
    encoded = data.encode("utf-8")[:MAX_CALLBACK_DATA_BYTES]
    return {
        "text": label[:64],
        "callback_data": encoded.decode("utf-8", errors="ignore"),
    }


def inline_keyboard(buttons: list[dict[str, Any]], per_row: int = MAX_BUTTONS_PER_ROW) -> dict[str, Any]:
    size = max(1, int(per_row))
    rows = [buttons[index:index + size] for index in range(0, len(buttons), size)]
    return {"inline_keyboard": rows}


def force_reply(placeholder: str | None = None) -> dict[str, Any]:
    markup: dict[str, Any] = {"force_reply": True, "selective": True}
    if placeholder:
        markup["input_field_placeholder"] = placeholder[:64]
    return markup
