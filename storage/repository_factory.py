from __future__ import annotations

from typing import Any

from storage.dynamo_repository import DynamoStorefrontRepository
from storage.repository import StorefrontRepository
from storage.repository_interface import StorefrontRepositoryProtocol


def create_storefront_repository(config: dict[str, Any]) -> StorefrontRepositoryProtocol:
    storage_conf = config.get("storage", {})
    backend = str(storage_conf.get("backend", "sqlite") or "sqlite").strip().lower()

    if backend == "dynamodb":
        ddb_conf = storage_conf.get("dynamodb", {}) if isinstance(storage_conf, dict) else {}
        tables = ddb_conf.get("tables", {}) if isinstance(ddb_conf, dict) else {}
        return DynamoStorefrontRepository(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "storefront")),
            update_table_name=_as_optional_str(tables.get("update_dedupe")),
            sessions_table_name=_as_optional_str(tables.get("sessions")),
            products_table_name=_as_optional_str(tables.get("products")),
            product_skus_table_name=_as_optional_str(tables.get("product_skus")),
            update_ttl_days=int(ddb_conf.get("update_ttl_days", 7)),
        )

    if backend != "sqlite":
        raise ValueError(f"unsupported storage backend: {backend}")
    sqlite_path = str(storage_conf.get("sqlite_path", "data/storefront/storefront.db"))
    return StorefrontRepository(sqlite_path=sqlite_path)


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
