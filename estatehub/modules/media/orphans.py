"""
孤儿资源台账
Orphan Ledger

记录本地引用已移除但远端删除失败的图片，供离线对账清理
"""

from __future__ import annotations

from typing import Any

from estatehub.core.logger import get_logger
from estatehub.core.store import DocumentStore
from estatehub.modules.assets.models import AssetHandle

COLLECTION = "orphans"


class OrphanLedger:
    """基于文档存储的孤儿资源记录。"""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.logger = get_logger()

    async def record(self, handle: AssetHandle, source: str, reason: str) -> dict[str, Any]:
        existing = await self.store.find_one(COLLECTION, "deletion_key", handle.deletion_key)
        if existing:
            return await self.bump(existing["id"], reason) or existing

        entry = await self.store.insert(
            COLLECTION,
            {
                "deletion_key": handle.deletion_key,
                "url": handle.url,
                "source": source,
                "reason": reason,
                "attempts": 1,
            },
        )
        self.logger.warning(f"Orphaned remote asset {handle.deletion_key} from {source}: {reason}")
        return entry

    async def bump(self, orphan_id: str, reason: str) -> dict[str, Any] | None:
        current = await self.store.get(COLLECTION, orphan_id)
        if current is None:
            return None
        current["attempts"] = int(current.get("attempts") or 0) + 1
        current["reason"] = reason
        return await self.store.replace(COLLECTION, orphan_id, current)

    async def resolve(self, orphan_id: str) -> bool:
        return await self.store.delete(COLLECTION, orphan_id)

    async def entries(self, limit: int = 1000) -> list[dict[str, Any]]:
        return await self.store.all(COLLECTION, limit=limit)
