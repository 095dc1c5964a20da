from __future__ import annotations

import json
from typing import Any
from urllib import error, request

MAX_TEXT_LENGTH = 4096


class TelegramBotApiError(RuntimeError):
    pass


class TelegramBotClient:
    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout_sec: float = 10.0,
    ) -> None:
        self.bot_token = (bot_token or "").strip()
        self.api_base_url = (api_base_url or "https://api.telegram.org").rstrip("/")
        self.timeout_sec = float(timeout_sec)

    def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        target = str(chat_id or "").strip()
        if not target:
            raise TelegramBotApiError("chat id is empty")
        payload: dict[str, Any] = {"chat_id": target, "text": (text or " ")[:MAX_TEXT_LENGTH]}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        result = self._call("sendMessage", payload)
        return result if isinstance(result, dict) else {}

    def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> None:
        query_id = (callback_query_id or "").strip()
        if not query_id:
            return
        payload: dict[str, Any] = {"callback_query_id": query_id}
        if text:
            payload["text"] = text[:200]
        self._call("answerCallbackQuery", payload)

    def _call(self, method: str, payload: dict[str, Any]) -> Any:
        if not self.bot_token:
            raise TelegramBotApiError("telegram.bot_token is required")
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        url = f"{self.api_base_url}/bot{self.bot_token}/{method}"
        req = request.Request(url=url, data=data, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                body = json.loads(resp.read().decode("utf-8") or "{}")
        except error.HTTPError as exc:
            detail = ""
            try:
                detail = exc.read().decode("utf-8", errors="ignore")
            except OSError:
                pass
            raise TelegramBotApiError(f"telegram api error: method={method} status={exc.code} body={detail}") from exc
        except error.URLError as exc:
            raise TelegramBotApiError(f"telegram api connection error: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise TelegramBotApiError(f"telegram api returned invalid json: method={method}") from exc

        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise TelegramBotApiError(f"telegram api error: method={method} description={description}")
        return body.get("result")
