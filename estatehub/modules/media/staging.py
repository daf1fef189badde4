"""
草稿上传暂存
Upload Staging

记录调用方已确认上传、尚未挂载到任何记录的图片，
使客户端只凭展示URL即可在创建房源时引用这些图片
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from estatehub.core.store import DocumentStore
from estatehub.modules.assets.models import AssetHandle

COLLECTION = "staged_uploads"


class UploadStaging:
    """
    按调用方隔离的上传暂存区

    每条暂存记录只能被 claim 一次，被认领的图片归认领方独占
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    @staticmethod
    def _key(owner_id: str, url: str) -> str:
        return f"{owner_id}:{url}"

    async def stage(self, owner_id: str, handles: list[AssetHandle]) -> None:
        # 同一 url 重复暂存视为已暂存
        for handle in handles:
            await self.store.upsert(
                COLLECTION,
                {"id": self._key(owner_id, handle.url), "owner_id": owner_id, **handle.to_dict()},
            )

    async def lookup(self, owner_id: str, url: str) -> AssetHandle | None:
        doc = await self.store.get(COLLECTION, self._key(owner_id, url))
        return AssetHandle.from_dict(doc) if doc else None

    async def claim(self, owner_id: str, url: str) -> AssetHandle | None:
        """
        认领一条暂存记录并将其移出暂存区

        Returns:
            认领成功返回句柄；记录不存在或已被其他请求认领时返回 None
        """
        handle = await self.lookup(owner_id, url)
        if handle is None:
            return None
        if not await self.store.delete(COLLECTION, self._key(owner_id, url)):
            return None
        return handle

    async def expired(self, max_age: int, limit: int = 1000) -> list[dict[str, Any]]:
        """暂存超过 max_age 秒仍未挂载的记录"""
        cutoff = datetime.now(UTC) - timedelta(seconds=max_age)
        return await self.store.created_before(COLLECTION, cutoff, limit=limit)

    async def entries(self, limit: int = 1000) -> list[dict[str, Any]]:
        return await self.store.all(COLLECTION, limit=limit)
