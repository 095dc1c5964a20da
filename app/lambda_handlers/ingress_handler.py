from __future__ import annotations

import base64
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
from botocore.exceptions import ClientError

from app.app_secrets import app_secret_id, load_app_secrets
from tgbot.secret_token import SECRET_TOKEN_HEADER, verify_secret_token
from tgbot.update_ids import build_update_id
from tgbot.updates import parse_update

TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET", "")
TELEGRAM_WEBHOOK_PATH = os.getenv("TELEGRAM_WEBHOOK_PATH", "/v1/webhooks/telegram")
SQS_QUEUE_URL = os.getenv("SQS_QUEUE_URL", "")
UPDATE_DEDUPE_TABLE = os.getenv("UPDATE_DEDUPE_TABLE", "")
UPDATE_DEDUPE_TTL_DAYS = int(os.getenv("UPDATE_DEDUPE_TTL_DAYS", "7"))

_clients: dict[str, Any] = {}


class _Reject(Exception):
    def __init__(self, status_code: int, error: str) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Verify a webhook call and hand the update to the FIFO queue."""
    _ = context
    try:
        update = _accept_request(event)
    except _Reject as reject:
        return _response(reject.status_code, {"ok": False, "error": reject.error})

    update_id = build_update_id(update)
    if not update_id or not _claim_update(update_id):
        print(f"telegram-update-skipped update_id={update_id or '-'}")
        return _response(200, {"ok": True, "enqueued": 0, "skipped": 1})

    _enqueue(update, update_id)
    print(f"telegram-update-enqueued update_id={update_id}")
    return _response(200, {"ok": True, "enqueued": 1, "skipped": 0})


def _accept_request(event: dict[str, Any]) -> dict[str, Any]:
    if not SQS_QUEUE_URL:
        raise _Reject(500, "SQS_QUEUE_URL is required")
    http = event.get("requestContext", {}).get("http", {})
    if str(http.get("method", "")).upper() != "POST":
        raise _Reject(405, "method_not_allowed")
    raw_path = str(event.get("rawPath", ""))
    if TELEGRAM_WEBHOOK_PATH and raw_path and raw_path != TELEGRAM_WEBHOOK_PATH:
        raise _Reject(404, "not_found")

    token = _header_value(event.get("headers"), SECRET_TOKEN_HEADER)
    if not verify_secret_token(_webhook_secret(), token):
        raise _Reject(401, "invalid_secret_token")

    try:
        update = json.loads(_request_body(event).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise _Reject(400, "invalid_json") from None
    if not isinstance(update, dict):
        raise _Reject(400, "update_must_be_object")
    return update


def _client(name: str) -> Any:
    client = _clients.get(name)
    if client is None:
        client = _clients[name] = boto3.client(name)
    return client


def _request_body(event: dict[str, Any]) -> bytes:
    body = event.get("body")
    if body is None:
        return b""
    if event.get("isBase64Encoded"):
        return base64.b64decode(str(body))
    return str(body).encode("utf-8")


def _header_value(headers: Any, name: str) -> str | None:
    # header names are case-insensitive
    if not isinstance(headers, dict):
        return None
    wanted = name.lower()
    return next((str(value) for key, value in headers.items() if str(key).lower() == wanted), None)


def _webhook_secret() -> str:
    if TELEGRAM_WEBHOOK_SECRET:
        return TELEGRAM_WEBHOOK_SECRET
    values = load_app_secrets(app_secret_id())
    return str(values.get("telegram_webhook_secret", "") or "")


def _claim_update(update_id: str) -> bool:
    if not UPDATE_DEDUPE_TABLE:
        return True
    now = datetime.now(timezone.utc)
    ttl_epoch = int((now + timedelta(days=max(1, UPDATE_DEDUPE_TTL_DAYS))).timestamp())
    try:
        _client("dynamodb").put_item(
            TableName=UPDATE_DEDUPE_TABLE,
            Item={
                "update_id": {"S": update_id},
                "received_at": {"S": now.isoformat()},
                "expires_at_epoch": {"N": str(ttl_epoch)},
            },
            ConditionExpression="attribute_not_exists(update_id)",
        )
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            return False
        raise
    return True


def _enqueue(update: dict[str, Any], update_id: str) -> None:
    message = parse_update(update).message
    # one FIFO group per user keeps each user's updates in order
    group_id = message.subject_id if message is not None else "telegram-unknown-subject"
    envelope = {
        "update_id": update_id,
        "enqueued_at": datetime.now(timezone.utc).isoformat(),
        "update": update,
    }
    _client("sqs").send_message(
        QueueUrl=SQS_QUEUE_URL,
        MessageBody=json.dumps(envelope, ensure_ascii=False),
        MessageGroupId=group_id,
        MessageDeduplicationId=update_id,
    )


def _response(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"content-type": "application/json; charset=utf-8"},
        "body": json.dumps(payload, ensure_ascii=False),
    }
