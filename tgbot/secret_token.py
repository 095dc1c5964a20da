from __future__ import annotations

import hmac

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def verify_secret_token(expected_secret: str, received: str | None) -> bool:
    secret = (expected_secret or "").strip()
    token = (received or "").strip()
    if not secret or not token:
        return False
    return hmac.compare_digest(secret.encode("utf-8"), token.encode("utf-8"))
