from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from core.models import ProductRecord, WorkflowSession, utc_now_iso
from storage.product_rows import image_rows, spec_rows
from storage.repository_interface import ProductCommitError


class StorefrontRepository:
    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.sqlite_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS workflow_sessions (
                    subject_id TEXT NOT NULL,
                    workflow_kind TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    state TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    pending_reply_ref TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    PRIMARY KEY (subject_id, workflow_kind)
                );
                CREATE INDEX IF NOT EXISTS idx_workflow_sessions_expires
                    ON workflow_sessions(expires_at);

                CREATE TABLE IF NOT EXISTS products (
                    product_id TEXT PRIMARY KEY,
                    sku TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    price TEXT,
                    category TEXT NOT NULL,
                    stock_count INTEGER,
                    description TEXT NOT NULL,
                    created_by TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS product_specs (
                    product_id TEXT NOT NULL REFERENCES products(product_id) ON DELETE CASCADE,
                    spec_name TEXT NOT NULL,
                    spec_value TEXT NOT NULL,
                    sort_order INTEGER NOT NULL,
                    PRIMARY KEY (product_id, sort_order)
                );

                CREATE TABLE IF NOT EXISTS product_images (
                    product_id TEXT NOT NULL REFERENCES products(product_id) ON DELETE CASCADE,
                    url TEXT NOT NULL,
                    alt_text TEXT NOT NULL,
                    is_primary INTEGER NOT NULL,
                    sort_order INTEGER NOT NULL,
                    PRIMARY KEY (product_id, sort_order)
                );

                CREATE TABLE IF NOT EXISTS processed_updates (
                    update_id TEXT PRIMARY KEY,
                    received_at TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def mark_update_processed(self, update_id: str) -> bool:
        key = (update_id or "").strip()
        if not key:
            return False

        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO processed_updates(update_id, received_at) VALUES(?, ?)",
                (key, utc_now_iso()),
            )
            conn.commit()
            return cur.rowcount > 0

    def get_session(self, subject_id: str, workflow_kind: str) -> WorkflowSession | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM workflow_sessions
                WHERE subject_id = ? AND workflow_kind = ? AND expires_at > ?
                """,
                (subject_id, workflow_kind, utc_now_iso()),
            ).fetchone()
        if row is None:
            return None
        return _session_from_row(row)

    def upsert_session(self, session: WorkflowSession) -> None:
        now = utc_now_iso()
        updated_at = session.updated_at or now
        created_at = session.created_at or updated_at
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO workflow_sessions(
                    subject_id, workflow_kind, session_id, channel_id, state, payload_json,
                    pending_reply_ref, created_at, updated_at, expires_at
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(subject_id, workflow_kind) DO UPDATE SET
                    session_id = excluded.session_id,
                    channel_id = excluded.channel_id,
                    state = excluded.state,
                    payload_json = excluded.payload_json,
                    pending_reply_ref = excluded.pending_reply_ref,
                    created_at = CASE
                        WHEN workflow_sessions.session_id = excluded.session_id THEN workflow_sessions.created_at
                        ELSE excluded.created_at
                    END,
                    updated_at = excluded.updated_at,
                    expires_at = excluded.expires_at
                """,
                (
                    session.subject_id,
                    session.workflow_kind,
                    session.session_id,
                    session.channel_id,
                    session.state.value,
                    json.dumps(session.payload(), ensure_ascii=False),
                    session.pending_reply_ref,
                    created_at,
                    updated_at,
                    session.expires_at or updated_at,
                ),
            )
            conn.commit()

    def delete_session(self, subject_id: str, workflow_kind: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM workflow_sessions WHERE subject_id = ? AND workflow_kind = ?",
                (subject_id, workflow_kind),
            )
            conn.commit()

    def purge_expired_sessions(self, now: str | None = None) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM workflow_sessions WHERE expires_at <= ?", (now or utc_now_iso(),))
            conn.commit()
            return cur.rowcount

    def commit(self, record: ProductRecord, created_by: str | None = None) -> str:
        product_id = str(uuid4())
        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO products(
                        product_id, sku, name, price, category, stock_count, description, created_by, created_at
                    ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        product_id,
                        record.sku,
                        record.name,
                        None if record.price is None else str(record.price),
                        record.category,
                        record.stock,
                        record.description,
                        created_by,
                        utc_now_iso(),
                    ),
                )
                conn.executemany(
                    """
                    INSERT INTO product_specs(product_id, spec_name, spec_value, sort_order)
                    VALUES(?, ?, ?, ?)
                    """,
                    [
                        (product_id, row["spec_name"], row["spec_value"], row["sort_order"])
                        for row in spec_rows(record)
                    ],
                )
                conn.executemany(
                    """
                    INSERT INTO product_images(product_id, url, alt_text, is_primary, sort_order)
                    VALUES(?, ?, ?, ?, ?)
                    """,
                    [
                        (product_id, row["url"], row["alt_text"], 1 if row["is_primary"] else 0, row["sort_order"])
                        for row in image_rows(record)
                    ],
                )
                conn.commit()
            except (sqlite3.Error, OverflowError) as exc:
                conn.rollback()
                raise ProductCommitError(f"failed to save product sku={record.sku}: {exc}", sku=record.sku) from exc
        return product_id

    def get_product(self, product_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM products WHERE product_id = ?", (product_id,)).fetchone()
            if row is None:
                return None
            specs = conn.execute(
                "SELECT spec_name, spec_value, sort_order FROM product_specs WHERE product_id = ? ORDER BY sort_order",
                (product_id,),
            ).fetchall()
            images = conn.execute(
                """
                SELECT url, alt_text, is_primary, sort_order FROM product_images
                WHERE product_id = ? ORDER BY sort_order
                """,
                (product_id,),
            ).fetchall()

        product = dict(row)
        product["specs"] = [dict(spec) for spec in specs]
        product["images"] = [{**dict(image), "is_primary": bool(image["is_primary"])} for image in images]
        return product


def _session_from_row(row: sqlite3.Row) -> WorkflowSession:
    try:
        payload = json.loads(row["payload_json"] or "{}")
    except json.JSONDecodeError:
        payload = {}
    return WorkflowSession.from_storage(
        session_id=row["session_id"],
        subject_id=row["subject_id"],
        channel_id=row["channel_id"],
        workflow_kind=row["workflow_kind"],
        state=row["state"],
        payload=payload,
        pending_reply_ref=row["pending_reply_ref"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        expires_at=row["expires_at"],
    )
