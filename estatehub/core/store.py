"""
文档存储
Document Store

基于 SQLite 的 JSON 文档集合，作为房源/用户/孤儿资源记录的持久化引擎
"""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from estatehub.core.logger import get_logger


class DocumentStore:
    """
    文档存储

    每个文档以 (collection, id) 为主键保存为 JSON，附带 created_at/updated_at/version。
    存储层不做业务校验，校验由仓储层完成。
    """

    def __init__(self, db_path: str = "data/estatehub.db", timeout: int = 30) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._timeout = int(timeout)
        self.logger = get_logger()
        self._ready = False

    @staticmethod
    def _now() -> str:
        return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    async def _ensure_schema(self) -> None:
        if self._ready:
            return
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
            await db.commit()
        self._ready = True

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> dict[str, Any]:
        doc = json.loads(row["body"])
        doc["id"] = row["id"]
        doc["version"] = row["version"]
        doc["created_at"] = row["created_at"]
        doc["updated_at"] = row["updated_at"]
        return doc

    @staticmethod
    def _body(document: dict[str, Any]) -> str:
        payload = {k: v for k, v in document.items() if k not in {"id", "version", "created_at", "updated_at"}}
        return json.dumps(payload, ensure_ascii=False)

    async def insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        """
        插入新文档，未提供 id 时自动生成

        Returns:
            带存储元数据的文档
        """
        await self._ensure_schema()
        doc_id = str(document.get("id") or self.new_id())
        now = self._now()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            await db.execute(
                """
                INSERT INTO documents(collection, id, body, version, created_at, updated_at)
                VALUES (?, ?, ?, 1, ?, ?)
                """,
                (collection, doc_id, self._body(document), now, now),
            )
            await db.commit()
        self.logger.debug(f"Inserted {collection}/{doc_id}")
        return {**document, "id": doc_id, "version": 1, "created_at": now, "updated_at": now}

    async def upsert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        """
        按 id 插入或覆盖文档；已存在时保留 created_at 并递增版本号

        Returns:
            写入后的文档
        """
        await self._ensure_schema()
        doc_id = str(document["id"])
        now = self._now()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            await db.execute(
                """
                INSERT INTO documents(collection, id, body, version, created_at, updated_at)
                VALUES (?, ?, ?, 1, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE SET
                    body = excluded.body,
                    version = documents.version + 1,
                    updated_at = excluded.updated_at
                """,
                (collection, doc_id, self._body(document), now, now),
            )
            await db.commit()
        return await self.get(collection, doc_id)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        await self._ensure_schema()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM documents WHERE collection = ? AND id = ?",
                (collection, str(doc_id)),
            )
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def replace(self, collection: str, doc_id: str, document: dict[str, Any]) -> dict[str, Any] | None:
        """
        整体替换文档内容并递增版本号

        Returns:
            替换后的文档；文档不存在时返回 None
        """
        await self._ensure_schema()
        now = self._now()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            cursor = await db.execute(
                """
                UPDATE documents
                SET body = ?, version = version + 1, updated_at = ?
                WHERE collection = ? AND id = ?
                """,
                (self._body(document), now, collection, str(doc_id)),
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> bool:
        await self._ensure_schema()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            cursor = await db.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, str(doc_id)),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            self.logger.debug(f"Deleted {collection}/{doc_id}")
        return deleted

    async def find_one(self, collection: str, field: str, value: Any) -> dict[str, Any] | None:
        """按顶层字段精确匹配查找单个文档。"""
        await self._ensure_schema()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM documents WHERE collection = ? AND json_extract(body, ?) = ? LIMIT 1",
                (collection, f"$.{field}", value),
            )
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def created_before(self, collection: str, cutoff: datetime, limit: int = 1000) -> list[dict[str, Any]]:
        """查找创建时间早于 cutoff（UTC）的文档，按创建时间升序"""
        await self._ensure_schema()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT * FROM documents
                WHERE collection = ? AND created_at < ?
                ORDER BY created_at ASC LIMIT ?
                """,
                (collection, cutoff.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ"), int(limit)),
            )
            rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows]

    async def all(self, collection: str, limit: int = 1000) -> list[dict[str, Any]]:
        await self._ensure_schema()
        async with aiosqlite.connect(self.db_path, timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM documents WHERE collection = ? ORDER BY created_at ASC LIMIT ?",
                (collection, int(limit)),
            )
            rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows]
