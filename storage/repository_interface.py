from __future__ import annotations

from typing import Any, Protocol

from core.models import ProductRecord, WorkflowSession


class ProductCommitError(RuntimeError):
    def __init__(self, message: str, sku: str | None = None) -> None:
        super().__init__(message)
        self.sku = sku


class SessionStoreProtocol(Protocol):
    def get_session(self, subject_id: str, workflow_kind: str) -> WorkflowSession | None: ...

    def upsert_session(self, session: WorkflowSession) -> None: ...

    def delete_session(self, subject_id: str, workflow_kind: str) -> None: ...


class ProductRepositoryProtocol(Protocol):
    def commit(self, record: ProductRecord, created_by: str | None = None) -> str: ...

    def get_product(self, product_id: str) -> dict[str, Any] | None: ...


class StorefrontRepositoryProtocol(SessionStoreProtocol, ProductRepositoryProtocol, Protocol):
    def mark_update_processed(self, update_id: str) -> bool: ...

    def purge_expired_sessions(self, now: str | None = None) -> int: ...
