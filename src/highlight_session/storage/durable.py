from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

MEDIA_STORE = "media"
TRANSCRIPT_STORE = "transcripts"
HIGHLIGHT_STORE = "highlights"
SESSION_STORE = "sessions"

ENTITY_STORES = (MEDIA_STORE, TRANSCRIPT_STORE, HIGHLIGHT_STORE)
DURABLE_STORES = (*ENTITY_STORES, SESSION_STORE)

# Operations queued by a transaction: ("key", store, key) or ("session", store, session_id).
DeleteOp = tuple[str, str, str]


def _is_transient(ex: BaseException) -> bool:
    if not isinstance(ex, sqlite3.OperationalError):
        return False
    message = str(ex).lower()
    return "locked" in message or "busy" in message


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason} while committing deletes. Retrying in {wait:.2f}s (attempt {attempt}/3)...")


class DurableStore:
    """SQLite-backed object stores keyed by id and indexed by session and media id.

    Each logical store is a table holding the JSON body of a record, its indexed
    columns, and an optional binary payload kept out of the JSON body.
    """

    def __init__(self, db_path: str):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialize_schema()

    def close(self) -> None:
        self._conn.close()

    def put(self, store: str, key: str, record: dict[str, Any]) -> None:
        table = self._table(store)
        body = {k: v for k, v in record.items() if k != "payload"}
        payload = record.get("payload")
        self._conn.execute(
            f"""
            INSERT INTO {table} (id, session_id, media_id, saved_at, save_seq, body_json, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                session_id = excluded.session_id,
                media_id = excluded.media_id,
                saved_at = excluded.saved_at,
                save_seq = excluded.save_seq,
                body_json = excluded.body_json,
                payload = excluded.payload
            """,
            (
                key,
                str(record.get("session_id", "")),
                record.get("media_id"),
                str(record.get("saved_at", "")),
                int(record.get("save_seq") or 0),
                json.dumps(body, ensure_ascii=True),
                payload,
            ),
        )
        self._conn.commit()

    def get(self, store: str, key: str) -> dict[str, Any] | None:
        table = self._table(store)
        row = self._conn.execute(
            f"SELECT body_json, payload FROM {table} WHERE id = ? LIMIT 1",
            (key,),
        ).fetchone()
        if row is None:
            return None
        return self._to_record(row)

    def get_all(
        self,
        store: str,
        *,
        session_id: str | None = None,
        media_id: str | None = None,
    ) -> list[dict[str, Any]]:
        table = self._table(store)
        clauses: list[str] = []
        params: list[str] = []
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        if media_id is not None:
            clauses.append("media_id = ?")
            params.append(media_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._conn.execute(
            f"SELECT body_json, payload FROM {table} {where} ORDER BY saved_at ASC, save_seq ASC, id ASC",
            tuple(params),
        ).fetchall()
        return [self._to_record(row) for row in rows]

    def session_ids(self, store: str) -> set[str]:
        table = self._table(store)
        rows = self._conn.execute(f"SELECT DISTINCT session_id FROM {table}").fetchall()
        return {str(row["session_id"]) for row in rows}

    def delete(self, store: str, key: str) -> None:
        with self.transaction():
            self._delete_key(store, key)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        stop=stop_after_attempt(3),
        before_sleep=_on_retry,
        reraise=True,
    )
    def apply_deletes(self, ops: list[DeleteOp]) -> int:
        """Apply every queued delete in one transaction. Returns the number of rows removed."""
        removed = 0
        with self.transaction():
            for kind, store, value in ops:
                if kind == "key":
                    removed += self._delete_key(store, value)
                elif kind == "session":
                    removed += self._delete_session(store, value)
                else:
                    raise ValueError(f"Unknown delete operation: {kind!r}")
        return removed

    def _delete_key(self, store: str, key: str) -> int:
        cursor = self._conn.execute(f"DELETE FROM {self._table(store)} WHERE id = ?", (key,))
        return max(0, cursor.rowcount)

    def _delete_session(self, store: str, session_id: str) -> int:
        cursor = self._conn.execute(
            f"DELETE FROM {self._table(store)} WHERE session_id = ?",
            (session_id,),
        )
        return max(0, cursor.rowcount)

    def _to_record(self, row: sqlite3.Row) -> dict[str, Any]:
        try:
            record = json.loads(row["body_json"])
        except json.JSONDecodeError:
            # Surfaced to the codec as an empty record so it fails decoding there.
            record = {}
        if not isinstance(record, dict):
            record = {"_raw": record}
        if row["payload"] is not None:
            record["payload"] = bytes(row["payload"])
        return record

    def _table(self, store: str) -> str:
        if store not in DURABLE_STORES:
            raise ValueError(f"Unknown durable store: {store!r}")
        return store

    def _initialize_schema(self) -> None:
        statements: list[str] = []
        for store in DURABLE_STORES:
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {store} (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    media_id TEXT NULL,
                    saved_at TEXT NOT NULL,
                    save_seq INTEGER NOT NULL DEFAULT 0,
                    body_json TEXT NOT NULL,
                    payload BLOB NULL
                );
                CREATE INDEX IF NOT EXISTS idx_{store}_session ON {store}(session_id);
                CREATE INDEX IF NOT EXISTS idx_{store}_media ON {store}(media_id);
                """
            )
        self._conn.executescript("\n".join(statements))
        self._conn.commit()
