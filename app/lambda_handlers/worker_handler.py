from __future__ import annotations

import json
import os
from typing import Any

from app.config import apply_env_overrides, load_config
from app.app_secrets import app_secret_id, apply_telegram_secrets, load_app_secrets
from tgbot.webhook_handler import TelegramWebhookHandler

_handler: TelegramWebhookHandler | None = None


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Process an SQS batch of Telegram updates in order.

    After the first failure the rest of the batch is returned unprocessed,
    so a user's later updates are never applied before the failed one.
    """
    _ = context
    handler = _get_handler()
    records = event.get("Records", [])
    failed_ids: list[str] = []
    for index, record in enumerate(records):
        message_id = str(record.get("messageId", "")).strip()
        try:
            handler.process_update(_update_from_record(record))
        except Exception as exc:  # noqa: BLE001
            print(f"worker-record-failed message_id={message_id} error={type(exc).__name__} detail={exc}")
            remaining = records[index:]
            failed_ids = [str(item.get("messageId", "")).strip() for item in remaining]
            print(f"worker-batch-halted retried={len(remaining)}")
            break
    return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in failed_ids if message_id]}


def _update_from_record(record: dict[str, Any]) -> dict[str, Any]:
    envelope = json.loads(str(record.get("body", "") or "{}"))
    update = envelope.get("update") if isinstance(envelope, dict) else None
    if not isinstance(update, dict):
        raise ValueError("missing update payload")
    return update


def _get_handler() -> TelegramWebhookHandler:
    global _handler
    if _handler is None:
        _handler = TelegramWebhookHandler(_build_config())
    return _handler


def _build_config() -> dict[str, Any]:
    config = load_config(os.getenv("CONFIG_PATH", "config.yaml"))
    apply_telegram_secrets(config, load_app_secrets(app_secret_id()))
    return apply_env_overrides(config)
