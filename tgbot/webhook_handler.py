from __future__ import annotations

import json
from typing import Any

from core.enums import WorkflowKind
from storage.repository_factory import create_storefront_repository
from storage.repository_interface import StorefrontRepositoryProtocol
from tgbot import message_templates
from tgbot.bot_client import TelegramBotClient
from tgbot.gateway import TelegramChatGateway
from tgbot.secret_token import verify_secret_token
from tgbot.update_ids import build_update_id
from tgbot.updates import parse_update
from workflow.controller import WorkflowController
from workflow.definition import WorkflowDefinition
from workflow.engine import WorkflowEngine


class TelegramWebhookHandler:
    def __init__(
        self,
        config: dict[str, Any],
        bot_client: TelegramBotClient | None = None,
        repository: StorefrontRepositoryProtocol | None = None,
    ) -> None:
        self.config = config
        self.telegram_conf = config.get("telegram", {})
        self.workflow_conf = config.get("workflow", {})
        self.enabled = bool(self.telegram_conf.get("enabled", False))
        self.webhook_secret = str(self.telegram_conf.get("webhook_secret", "") or "").strip()
        allowed = self.telegram_conf.get("allowed_user_ids", [])
        self.allowed_user_ids = {
            str(user_id).strip()
            for user_id in (allowed if isinstance(allowed, list) else [])
            if str(user_id).strip()
        }

        self.repository = repository or create_storefront_repository(config)
        self.bot_client = bot_client or TelegramBotClient(
            bot_token=str(self.telegram_conf.get("bot_token", "") or ""),
            api_base_url=str(self.telegram_conf.get("api_base_url", "https://api.telegram.org")),
            timeout_sec=float(self.telegram_conf.get("timeout_sec", 10)),
        )
        self.gateway = TelegramChatGateway(self.bot_client)
        engine = WorkflowEngine(
            definition=WorkflowDefinition(max_images=int(self.workflow_conf.get("max_images", 5))),
            session_ttl_hours=float(self.workflow_conf.get("session_ttl_hours", 24)),
        )
        self.controller = WorkflowController(
            session_store=self.repository,
            product_repository=self.repository,
            gateway=self.gateway,
            engine=engine,
            workflow_kind=WorkflowKind.ADD_PRODUCT,
        )

    def handle(self, body: bytes, secret_token: str | None) -> tuple[int, dict[str, Any]]:
        if not self.enabled:
            return 503, {"ok": False, "error": "telegram.enabled is false"}
        if not verify_secret_token(self.webhook_secret, secret_token):
            return 401, {"ok": False, "error": "invalid secret token"}

        try:
            update = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return 400, {"ok": False, "error": "invalid json payload"}
        if not isinstance(update, dict):
            return 400, {"ok": False, "error": "update must be object"}

        update_id = build_update_id(update)
        if update_id and not self.repository.mark_update_processed(update_id):
            return 200, {"ok": True, "handled": 0, "skipped": 1, "errors": []}

        errors: list[str] = []
        handled = 0
        skipped = 0
        try:
            if self.process_update(update):
                handled += 1
            else:
                skipped += 1
        except Exception as exc:  # noqa: BLE001
            errors.append(type(exc).__name__)
        return 200, {"ok": len(errors) == 0, "handled": handled, "skipped": skipped, "errors": errors}

    def process_update(self, update: dict[str, Any]) -> bool:
        parsed = parse_update(update)
        message = parsed.message
        if message is None:
            return False

        if message.callback_id:
            self._answer_callback(message.callback_id)
        if not parsed.is_private:
            self._send(message.channel_id, message_templates.PRIVATE_CHAT_ONLY_TEXT)
            return True
        if self.allowed_user_ids and message.subject_id not in self.allowed_user_ids:
            self._send(message.channel_id, message_templates.NOT_ALLOWED_TEXT)
            return True
        if parsed.kind == "unsupported":
            self._send(message.channel_id, message_templates.UNSUPPORTED_MESSAGE_TEXT)
            return True

        try:
            result = self.controller.handle(message)
        except Exception as exc:
            print(
                f"telegram-update-failed subject_id={message.subject_id} "
                f"error={type(exc).__name__} detail={exc}"
            )
            self._send(message.channel_id, message_templates.PROCESSING_FAILED_TEXT)
            raise
        print(
            f"telegram-update-handled subject_id={message.subject_id} "
            f"status={result.status.value} state={result.state.value if result.state else '-'}"
        )
        return True

    def _answer_callback(self, callback_id: str) -> None:
        try:
            self.bot_client.answer_callback_query(callback_id)
        except Exception as exc:  # noqa: BLE001
            print(f"telegram-answer-callback-failed: {exc}")

    def _send(self, channel_id: str, text: str) -> None:
        try:
            self.bot_client.send_message(channel_id, text)
        except Exception as exc:  # noqa: BLE001
            print(f"telegram-send-failed: {exc}")
