from __future__ import annotations

import json
import logging
import re
from typing import Any

from fastapi import HTTPException
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .store import InMemoryStore

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def user_key(email: str) -> str:
    return f"user:{email}"


def missions_key(email: str) -> str:
    return f"missions:{email}"


def transactions_key(email: str) -> str:
    return f"transactions:{email}"


def financial_key(email: str) -> str:
    return f"financial:{email}"


def post_key(post_id: str) -> str:
    return f"post:{post_id}"


class KVStore:
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def get_by_prefix(self, prefix: str) -> list[Any]:
        raise NotImplementedError


class InMemoryKVStore(KVStore):
    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store or InMemoryStore()

    def get(self, key: str) -> Any | None:
        return self.store.read(key)

    def set(self, key: str, value: Any) -> None:
        self.store.write(key, value)

    def delete(self, key: str) -> None:
        self.store.remove(key)

    def get_by_prefix(self, prefix: str) -> list[Any]:
        return self.store.scan(prefix)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlKVStore(KVStore):
    """Key-value table on any SQLAlchemy engine; values are stored as JSON text."""

    def __init__(self, database_url: str, table: str = "kv_store") -> None:
        if not _TABLE_NAME.match(table):
            raise ValueError(f"invalid table name: {table}")
        self.engine: Engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self.table = table
        self._schema_ready = False

    def _run(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), params or {})
                if result.returns_rows:
                    return [dict(row._mapping) for row in result.fetchall()]
                return []
        except SQLAlchemyError as exc:
            logger.error("KV storage error: %s", exc)
            raise HTTPException(status_code=500, detail=f"storage error: {exc.__class__.__name__}") from exc

    def _ensure_table(self) -> None:
        if self._schema_ready:
            return
        self._run(
            f"""
            create table if not exists {self.table} (
              key text primary key,
              value text not null
            )
            """
        )
        self._schema_ready = True

    def get(self, key: str) -> Any | None:
        self._ensure_table()
        rows = self._run(f"select value from {self.table} where key = :key", {"key": key})
        if not rows:
            return None
        return json.loads(rows[0]["value"])

    def set(self, key: str, value: Any) -> None:
        self._ensure_table()
        self._run(
            f"""
            insert into {self.table} (key, value) values (:key, :value)
            on conflict (key) do update set value = excluded.value
            """,
            {"key": key, "value": json.dumps(value, ensure_ascii=False)},
        )

    def delete(self, key: str) -> None:
        self._ensure_table()
        self._run(f"delete from {self.table} where key = :key", {"key": key})

    def get_by_prefix(self, prefix: str) -> list[Any]:
        self._ensure_table()
        rows = self._run(
            f"select value from {self.table} where key like :pattern escape '\\'",
            {"pattern": f"{_escape_like(prefix)}%"},
        )
        return [json.loads(row["value"]) for row in rows]


def get_kv_store(settings: Settings) -> KVStore:
    if settings.storage_backend in {"sql", "postgres"}:
        return SqlKVStore(settings.database_url, settings.kv_table)
    return InMemoryKVStore()
