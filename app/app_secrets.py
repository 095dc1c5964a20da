from __future__ import annotations

import json
import os
from typing import Any, Mapping

import boto3
from botocore.exceptions import ClientError

_secret_cache: dict[str, dict[str, Any]] = {}


def app_secret_id(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    for name in ("APP_SECRETS_ARN", "APP_SECRETS_NAME"):
        value = str(env.get(name, "") or "").strip()
        if value:
            return value
    return ""


def load_app_secrets(secret_id: str, client: Any | None = None) -> dict[str, Any]:
    """Fetch the JSON app secret from Secrets Manager, once per container."""
    if not secret_id:
        return {}
    cached = _secret_cache.get(secret_id)
    if cached is not None:
        return cached
    secrets_client = client or boto3.client("secretsmanager")
    try:
        response = secrets_client.get_secret_value(SecretId=secret_id)
    except ClientError as exc:
        raise RuntimeError(f"failed to read app secret from Secrets Manager: {exc}") from exc
    values = _parse_secret_string(response.get("SecretString"))
    _secret_cache[secret_id] = values
    return values


def apply_telegram_secrets(config: dict[str, Any], values: Mapping[str, Any]) -> dict[str, Any]:
    telegram_conf = config.setdefault("telegram", {})
    for secret_key, config_key in (
        ("telegram_bot_token", "bot_token"),
        ("telegram_webhook_secret", "webhook_secret"),
    ):
        value = str(values.get(secret_key, "") or "").strip()
        if value:
            telegram_conf[config_key] = value
    return config


def _parse_secret_string(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"invalid app secret JSON payload: {exc}") from exc
    return parsed if isinstance(parsed, dict) else {}
