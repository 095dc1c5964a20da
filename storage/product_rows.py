from __future__ import annotations

import unicodedata
from typing import Any

from core.models import ProductRecord

IMAGE_URL_SCHEME = "telegram_file://"


def split_spec(entry: str) -> tuple[str, str]:
    text = unicodedata.normalize("NFKC", entry or "").strip()
    if ":" in text:
        name, value = text.split(":", 1)
        if name.strip():
            return name.strip(), value.strip()
    return text, text


def spec_rows(record: ProductRecord) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for index, entry in enumerate(record.specs):
        name, value = split_spec(entry)
        rows.append({"spec_name": name, "spec_value": value, "sort_order": index})
    return rows


def image_rows(record: ProductRecord) -> list[dict[str, Any]]:
    return [
        {
            "url": f"{IMAGE_URL_SCHEME}{file_id}",
            "alt_text": f"{record.name} image {index + 1}",
            "is_primary": index == 0,
            "sort_order": index,
        }
        for index, file_id in enumerate(record.image_refs)
    ]
