from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.enums import Affordance, WorkflowState

SESSION_SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    # fixed precision keeps lexical order equal to time order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now_iso() -> str:
    return to_iso(utc_now())


def expires_at_from(updated: datetime, ttl_hours: float) -> str:
    return to_iso(updated + timedelta(hours=ttl_hours))


@dataclass(slots=True)
class ProductRecord:
    sku: str = ""
    name: str = ""
    category: str = ""
    price: Optional[Decimal] = None
    stock: Optional[int] = None
    description: str = ""
    specs: list[str] = field(default_factory=list)
    image_refs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price": None if self.price is None else str(self.price),
            "stock": self.stock,
            "description": self.description,
            "specs": list(self.specs),
            "image_refs": list(self.image_refs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProductRecord":
        raw = data if isinstance(data, dict) else {}
        return cls(
            sku=str(raw.get("sku") or ""),
            name=str(raw.get("name") or ""),
            category=str(raw.get("category") or ""),
            price=_to_decimal(raw.get("price")),
            stock=_to_int(raw.get("stock")),
            description=str(raw.get("description") or ""),
            specs=[str(item) for item in raw.get("specs") or [] if item is not None],
            image_refs=[str(item) for item in raw.get("image_refs") or [] if item is not None],
        )


@dataclass(slots=True)
class WorkflowSession:
    session_id: str
    subject_id: str
    channel_id: str
    workflow_kind: str
    state: WorkflowState
    record: ProductRecord = field(default_factory=ProductRecord)
    paused_from: Optional[WorkflowState] = None
    pending_reply_ref: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    expires_at: str = ""

    def payload(self) -> dict[str, Any]:
        """Versioned JSON body stored next to the session's key columns."""
        return {
            "schema_version": SESSION_SCHEMA_VERSION,
            "record": self.record.to_dict(),
            "paused_from": self.paused_from.value if self.paused_from else None,
        }

    @classmethod
    def from_storage(
        cls,
        *,
        session_id: str,
        subject_id: str,
        channel_id: str,
        workflow_kind: str,
        state: str,
        payload: dict[str, Any] | None,
        pending_reply_ref: str | None,
        created_at: str,
        updated_at: str,
        expires_at: str,
    ) -> "WorkflowSession":
        body = payload if isinstance(payload, dict) else {}
        paused_from = body.get("paused_from")
        return cls(
            session_id=session_id,
            subject_id=subject_id,
            channel_id=channel_id,
            workflow_kind=workflow_kind,
            state=WorkflowState(state),
            record=ProductRecord.from_dict(body.get("record")),
            paused_from=WorkflowState(paused_from) if paused_from else None,
            pending_reply_ref=pending_reply_ref or None,
            created_at=created_at,
            updated_at=updated_at,
            expires_at=expires_at,
        )

    def is_expired(self, now_iso: str | None = None) -> bool:
        if not self.expires_at:
            return False
        return self.expires_at <= (now_iso or utc_now_iso())


@dataclass(slots=True)
class StepInput:
    text: str = ""
    media_ref: Optional[str] = None


@dataclass(slots=True)
class InboundMessage:
    subject_id: str
    channel_id: str
    text: str = ""
    media_ref: Optional[str] = None
    callback_data: Optional[str] = None
    callback_id: Optional[str] = None
    reply_to_ref: Optional[str] = None
    message_ref: Optional[str] = None

    def step_input(self) -> StepInput:
        return StepInput(text=self.text, media_ref=self.media_ref)


@dataclass(slots=True)
class Prompt:
    text: str
    actions: tuple[Affordance, ...] = ()
    state: Optional[WorkflowState] = None
    force_reply: bool = False


def _to_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
