from __future__ import annotations

import re
import unicodedata
from decimal import Decimal, InvalidOperation

DECIMAL_PATTERN = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$")
INTEGER_PATTERN = re.compile(r"^\d+$")
# SQLite INTEGER is signed 64-bit; DynamoDB numbers hold 38 digits
MAX_STOCK = 2**63 - 1
MAX_PRICE_DIGITS = 38


class FieldValidationError(ValueError):
    def __init__(self, code: str, message: str, count: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.count = count


def normalize_text(raw: str | None) -> str:
    if raw is None:
        return ""
    return unicodedata.normalize("NFKC", str(raw)).strip()


def require_text(raw: str | None) -> str:
    text = str(raw or "").strip()
    if not text:
        raise FieldValidationError("required", "a value is required")
    return text


def parse_price(raw: str | None) -> Decimal:
    text = normalize_text(raw)
    if not text:
        raise FieldValidationError("required", "a price is required")
    if not DECIMAL_PATTERN.fullmatch(text):
        raise FieldValidationError("invalid_decimal", "price must be a non-negative number such as 19.99")
    try:
        price = Decimal(text)
    except InvalidOperation as exc:
        raise FieldValidationError("invalid_decimal", "price must be a non-negative number such as 19.99") from exc
    digits = price.as_tuple()
    if len(digits.digits) > MAX_PRICE_DIGITS or digits.exponent < -MAX_PRICE_DIGITS:
        raise FieldValidationError("invalid_decimal", f"price may have at most {MAX_PRICE_DIGITS} digits")
    return price


def parse_stock(raw: str | None) -> int:
    text = normalize_text(raw)
    if not text:
        raise FieldValidationError("required", "a stock count is required")
    if not INTEGER_PATTERN.fullmatch(text):
        raise FieldValidationError("invalid_integer", "stock must be a non-negative whole number")
    stock = int(text) if len(text) <= len(str(MAX_STOCK)) else MAX_STOCK + 1
    if stock > MAX_STOCK:
        raise FieldValidationError("invalid_integer", f"stock must not exceed {MAX_STOCK}")
    return stock


def split_lines(raw: str | None) -> list[str]:
    return [line.strip() for line in str(raw or "").splitlines() if line.strip()]


def check_image_capacity(media_ref: str | None, current_count: int, max_images: int) -> str:
    if current_count >= max_images:
        raise FieldValidationError(
            "image_limit",
            f"image limit reached ({current_count}/{max_images})",
            count=current_count,
        )
    ref = str(media_ref or "").strip()
    if not ref:
        raise FieldValidationError("image_required", "please send a photo", count=current_count)
    return ref
