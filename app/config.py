from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "telegram": {
        "enabled": False,
        "bot_token": None,
        "webhook_secret": None,
        "webhook_path": "/v1/webhooks/telegram",
        "api_base_url": "https://api.telegram.org",
        "timeout_sec": 10,
        "allowed_user_ids": [],
    },
    "workflow": {
        "session_ttl_hours": 24,
        "max_images": 5,
    },
    "storage": {
        "backend": "sqlite",
        "sqlite_path": "data/storefront/storefront.db",
        "dynamodb": {
            "region": None,
            "table_prefix": "storefront",
            "update_ttl_days": 7,
            "tables": {
                "update_dedupe": None,
                "sessions": None,
                "products": None,
                "product_skus": None,
            },
        },
    },
}

ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "TELEGRAM_WEBHOOK_SECRET": ("telegram", "webhook_secret"),
    "TELEGRAM_WEBHOOK_PATH": ("telegram", "webhook_path"),
    "STORAGE_BACKEND": ("storage", "backend"),
    "SQLITE_PATH": ("storage", "sqlite_path"),
    "DDB_REGION": ("storage", "dynamodb", "region"),
    "DDB_TABLE_PREFIX": ("storage", "dynamodb", "table_prefix"),
    "DDB_UPDATE_TABLE": ("storage", "dynamodb", "tables", "update_dedupe"),
    "DDB_SESSIONS_TABLE": ("storage", "dynamodb", "tables", "sessions"),
    "DDB_PRODUCTS_TABLE": ("storage", "dynamodb", "tables", "products"),
    "DDB_PRODUCT_SKUS_TABLE": ("storage", "dynamodb", "tables", "product_skus"),
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | None = None) -> dict[str, Any]:
    defaults = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path:
        return defaults

    path = Path(config_path)
    if not path.exists():
        return defaults

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return defaults

    if path.suffix.lower() == ".json":
        loaded = json.loads(text)
    else:
        loaded = yaml.safe_load(text)
    data = loaded if isinstance(loaded, dict) else {}
    return deep_merge(defaults, data)


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    for env_name, path in ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None or value == "":
            continue
        target = config
        for key in path[:-1]:
            target = target.setdefault(key, {})
        target[path[-1]] = value

    telegram_conf = config.setdefault("telegram", {})
    workflow_conf = config.setdefault("workflow", {})
    allowed_ids = env.get("TELEGRAM_ALLOWED_USER_IDS", "")
    if allowed_ids.strip():
        telegram_conf["allowed_user_ids"] = [item.strip() for item in allowed_ids.split(",") if item.strip()]
    if "TELEGRAM_ENABLED" in env:
        telegram_conf["enabled"] = _is_true(env.get("TELEGRAM_ENABLED", ""))
    if env.get("SESSION_TTL_HOURS", "").strip():
        workflow_conf["session_ttl_hours"] = float(env["SESSION_TTL_HOURS"])
    if env.get("MAX_PRODUCT_IMAGES", "").strip():
        workflow_conf["max_images"] = int(env["MAX_PRODUCT_IMAGES"])
    return config


def _is_true(value: str) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}
