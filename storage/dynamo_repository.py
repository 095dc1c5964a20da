from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal, DecimalException
from typing import Any
from uuid import uuid4

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from core.models import ProductRecord, WorkflowSession, utc_now_iso
from storage.product_rows import image_rows, spec_rows
from storage.repository_interface import ProductCommitError


class DynamoStorefrontRepository:
    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "storefront",
        update_table_name: str | None = None,
        sessions_table_name: str | None = None,
        products_table_name: str | None = None,
        product_skus_table_name: str | None = None,
        update_ttl_days: int = 7,
        dynamodb_resource: Any | None = None,
    ) -> None:
        normalized_prefix = (table_prefix or "storefront").strip()
        self.update_ttl_days = max(1, int(update_ttl_days))
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._update_table = self._ddb.Table(update_table_name or f"{normalized_prefix}-telegram-update-dedupe")
        self._sessions_table = self._ddb.Table(sessions_table_name or f"{normalized_prefix}-workflow-sessions")
        self._products_table = self._ddb.Table(products_table_name or f"{normalized_prefix}-products")
        self._product_skus_table = self._ddb.Table(product_skus_table_name or f"{normalized_prefix}-product-skus")

    def mark_update_processed(self, update_id: str) -> bool:
        key = (update_id or "").strip()
        if not key:
            return False
        now = datetime.now(timezone.utc)
        expires = int((now + timedelta(days=self.update_ttl_days)).timestamp())
        try:
            self._update_table.put_item(
                Item={
                    "update_id": key,
                    "received_at": now.isoformat(),
                    "expires_at_epoch": expires,
                },
                ConditionExpression="attribute_not_exists(update_id)",
            )
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code == "ConditionalCheckFailedException":
                return False
            raise

    def get_session(self, subject_id: str, workflow_kind: str) -> WorkflowSession | None:
        item = self._sessions_table.get_item(
            Key={"subject_id": subject_id, "workflow_kind": workflow_kind},
            ConsistentRead=True,
        ).get("Item")
        if not isinstance(item, dict):
            return None
        session = WorkflowSession.from_storage(
            session_id=str(item["session_id"]),
            subject_id=str(item["subject_id"]),
            channel_id=str(item.get("channel_id", "")),
            workflow_kind=str(item["workflow_kind"]),
            state=str(item["state"]),
            payload=_load_json(item.get("payload_json")),
            pending_reply_ref=_as_optional_str(item.get("pending_reply_ref")),
            created_at=str(item.get("created_at", "")),
            updated_at=str(item.get("updated_at", "")),
            expires_at=str(item.get("expires_at", "")),
        )
        # TTL deletion lags, so expiry is checked on read
        return None if session.is_expired() else session

    def upsert_session(self, session: WorkflowSession) -> None:
        now = utc_now_iso()
        updated_at = session.updated_at or now
        expires_at = session.expires_at or updated_at
        self._sessions_table.put_item(
            Item={
                "subject_id": session.subject_id,
                "workflow_kind": session.workflow_kind,
                "session_id": session.session_id,
                "channel_id": session.channel_id,
                "state": session.state.value,
                "payload_json": json.dumps(session.payload(), ensure_ascii=False),
                "pending_reply_ref": session.pending_reply_ref,
                "created_at": session.created_at or updated_at,
                "updated_at": updated_at,
                "expires_at": expires_at,
                "expires_at_epoch": _iso_to_epoch(expires_at),
            }
        )

    def delete_session(self, subject_id: str, workflow_kind: str) -> None:
        self._sessions_table.delete_item(Key={"subject_id": subject_id, "workflow_kind": workflow_kind})

    def purge_expired_sessions(self, now: str | None = None) -> int:
        cutoff = now or utc_now_iso()
        scan_kwargs: dict[str, Any] = {
            "FilterExpression": Attr("expires_at").lte(cutoff),
            "ProjectionExpression": "subject_id, workflow_kind",
        }
        removed = 0
        while True:
            response = self._sessions_table.scan(**scan_kwargs)
            for item in response.get("Items", []):
                self.delete_session(str(item["subject_id"]), str(item["workflow_kind"]))
                removed += 1
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return removed
            scan_kwargs["ExclusiveStartKey"] = last_key

    def commit(self, record: ProductRecord, created_by: str | None = None) -> str:
        product_id = str(uuid4())
        now = utc_now_iso()
        product_item: dict[str, Any] = {
            "product_id": product_id,
            "sku": record.sku,
            "name": record.name,
            "price": record.price if isinstance(record.price, Decimal) else None,
            "category": record.category,
            "stock_count": record.stock,
            "description": record.description,
            "specs": spec_rows(record),
            "images": image_rows(record),
            "created_by": created_by,
            "created_at": now,
        }
        transact_items = [
            {
                "Put": {
                    "TableName": self._product_skus_table.name,
                    "Item": {"sku": record.sku, "product_id": product_id, "created_at": now},
                    "ConditionExpression": "attribute_not_exists(sku)",
                }
            },
            {
                "Put": {
                    "TableName": self._products_table.name,
                    "Item": product_item,
                    "ConditionExpression": "attribute_not_exists(product_id)",
                }
            },
        ]
        client = self._ddb.meta.client
        try:
            client.transact_write_items(TransactItems=transact_items)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code == "TransactionCanceledException":
                raise ProductCommitError(f"sku already exists: {record.sku}", sku=record.sku) from exc
            raise ProductCommitError(f"failed to save product sku={record.sku}: {code}", sku=record.sku) from exc
        except (BotoCoreError, DecimalException, TypeError) as exc:
            # serializer errors surface here before any request is sent
            raise ProductCommitError(f"failed to save product sku={record.sku}: {exc!r}", sku=record.sku) from exc
        return product_id

    def get_product(self, product_id: str) -> dict[str, Any] | None:
        item = self._products_table.get_item(Key={"product_id": product_id}).get("Item")
        if not isinstance(item, dict):
            return None
        product = dict(item)
        product["specs"] = [_plain_row(row) for row in item.get("specs") or []]
        product["images"] = [_plain_row(row) for row in item.get("images") or []]
        return product


def _plain_row(row: dict[str, Any]) -> dict[str, Any]:
    return {key: int(value) if isinstance(value, Decimal) else value for key, value in row.items()}


def _load_json(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        loaded = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return loaded if isinstance(loaded, dict) else {}


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _iso_to_epoch(text: str) -> int:
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())
