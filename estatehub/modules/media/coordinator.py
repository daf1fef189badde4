"""
图片资源协调器
Media Asset Coordinator

编排「先上传、再挂载」与「先解除引用、再删除」两类流程：
- attach：并发上传，逐文件收集结果，不做持久化
- detach：逐个派发远端删除，失败记入孤儿台账，不阻塞调用方
"""

from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Any, Iterable

from PIL import Image, UnidentifiedImageError

from estatehub.core.config import get_config
from estatehub.core.error_handler import (
    CapacityExceededError,
    EstateError,
    PartialFailureError,
    ValidationError,
)
from estatehub.core.logger import get_logger
from estatehub.modules.assets.models import AssetHandle, UploadPayload
from estatehub.modules.interfaces import IAssetStore
from estatehub.modules.media.orphans import OrphanLedger
from estatehub.modules.media.staging import UploadStaging

_GENERIC_CONTENT_TYPES = {"application/octet-stream", "binary/octet-stream"}


class MediaAssetCoordinator:
    """
    图片资源协调器

    负责上传前校验、容量检查、并发上传与后台清理
    """

    def __init__(self, asset_store: IAssetStore, orphans: OrphanLedger, config: dict | None = None):
        """
        初始化协调器

        Args:
            asset_store: 远端存储客户端
            orphans: 孤儿资源台账
            config: media 配置段
        """
        self.asset_store = asset_store
        self.orphans = orphans
        self.config = config or get_config().media
        self.logger = get_logger()

        self.max_gallery_size = int(self.config.get("max_gallery_size", 7))
        self.min_gallery_size = int(self.config.get("min_gallery_size", 1))
        self.max_image_size = int(self.config.get("max_image_size", 5 * 1024 * 1024))
        self.supported_formats = [f.lower() for f in self.config.get("supported_formats", ["jpg", "jpeg", "png", "webp"])]
        self.upload_concurrency = max(1, int(self.config.get("upload_concurrency", 4)))
        self.staging_ttl = max(0, int(self.config.get("staging_ttl", 86400)))

        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # 校验
    # ------------------------------------------------------------------

    def validate_payloads(self, payloads: list[UploadPayload], field: str = "images") -> None:
        """
        上传前校验文件格式与大小

        Raises:
            ValidationError: 空批次、格式不支持、空文件或超出大小限制
        """
        if not payloads:
            raise ValidationError(field, "required", "At least one image file is required")

        for index, payload in enumerate(payloads):
            item = f"{field}[{index}]"
            if payload.extension not in self.supported_formats:
                raise ValidationError(
                    item, "format", f"Unsupported image format: {payload.extension or 'unknown'}"
                )
            content_type = (payload.content_type or "").lower()
            if content_type and content_type not in _GENERIC_CONTENT_TYPES and not content_type.startswith("image/"):
                raise ValidationError(item, "content_type", f"Not an image: {content_type}")
            if payload.size == 0:
                raise ValidationError(item, "not_empty", f"File {payload.filename} is empty")
            if payload.size > self.max_image_size:
                raise ValidationError(
                    item,
                    "max_size",
                    f"Image too large: {payload.size / 1024 / 1024:.2f}MB "
                    f"(limit {self.max_image_size / 1024 / 1024:.2f}MB)",
                )
            if not self._decodable(payload):
                raise ValidationError(item, "decodable", f"File {payload.filename} is not a readable image")

    @staticmethod
    def _decodable(payload: UploadPayload) -> bool:
        try:
            with Image.open(BytesIO(payload.content)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
            return False
        return True

    def check_capacity(self, current_count: int, requested: int) -> None:
        """
        检查图集剩余容量，超限时整体拒绝

        Raises:
            CapacityExceededError
        """
        remaining = max(0, self.max_gallery_size - int(current_count))
        if requested > remaining:
            raise CapacityExceededError(requested=requested, remaining=remaining, limit=self.max_gallery_size)

    # ------------------------------------------------------------------
    # attach
    # ------------------------------------------------------------------

    async def attach(
        self,
        payloads: list[UploadPayload],
        current_count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> list[AssetHandle]:
        """
        并发上传一批文件

        单个文件失败不影响其他文件；只要有失败即抛出 PartialFailureError，
        其中携带成功的句柄与失败明细。本方法不写入任何记录。

        Args:
            payloads: 待上传文件
            current_count: 目标图集现有数量
            metadata: 透传给远端存储的元数据

        Returns:
            与 payloads 顺序一致的句柄列表
        """
        self.validate_payloads(payloads)
        self.check_capacity(current_count, len(payloads))

        semaphore = asyncio.Semaphore(self.upload_concurrency)

        async def _one(payload: UploadPayload) -> AssetHandle:
            async with semaphore:
                return await self.asset_store.upload(payload, metadata)

        self.logger.info(f"Uploading {len(payloads)} image(s)...")
        results = await asyncio.gather(*[_one(p) for p in payloads], return_exceptions=True)

        uploaded: list[AssetHandle] = []
        failures: list[dict[str, Any]] = []
        for index, (payload, result) in enumerate(zip(payloads, results)):
            if isinstance(result, AssetHandle):
                uploaded.append(result)
                continue
            if not isinstance(result, Exception):
                raise result
            failures.append(
                {
                    "index": index,
                    "filename": payload.filename,
                    "error": result.__class__.__name__,
                    "message": result.message if isinstance(result, EstateError) else str(result),
                }
            )
            self.logger.warning(f"Upload failed for {payload.filename}: {result}")

        if failures:
            raise PartialFailureError(uploaded=uploaded, failures=failures)

        self.logger.success(f"Uploaded {len(uploaded)} image(s)")
        return uploaded

    async def upload_one(self, payload: UploadPayload, metadata: dict[str, Any] | None = None) -> AssetHandle:
        """单槽位上传（头像），失败时直接抛出底层错误。"""
        self.validate_payloads([payload], field="avatar")
        return await self.asset_store.upload(payload, metadata)

    # ------------------------------------------------------------------
    # detach
    # ------------------------------------------------------------------

    def detach(self, handles: Iterable[AssetHandle], source: str) -> list[asyncio.Task]:
        """
        派发远端删除任务后立即返回

        Args:
            handles: 已不再被引用的句柄
            source: 来源描述，如 "listing:<id>"

        Returns:
            已派发的任务（调用方无需等待）
        """
        tasks = []
        for handle in handles:
            task = asyncio.create_task(self._delete_remote(handle, source))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        if tasks:
            self.logger.debug(f"Dispatched {len(tasks)} remote deletion(s) for {source}")
        return tasks

    async def _delete_remote(self, handle: AssetHandle, source: str) -> bool:
        try:
            await self.asset_store.delete(handle.deletion_key)
            return True
        except Exception as e:
            try:
                await self.orphans.record(handle, source=source, reason=str(e))
            except Exception as ledger_error:
                self.logger.error(
                    f"Failed to record orphan {handle.deletion_key} from {source}: {ledger_error}"
                )
            return False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait_idle(self) -> None:
        """等待所有已派发的删除任务结束（测试与优雅退出时使用）。"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------

    async def reconcile_orphans(self, limit: int = 1000) -> dict[str, Any]:
        """
        对账清理：重试孤儿资源的远端删除

        Returns:
            {"checked": n, "resolved": n, "remaining": n}
        """
        entries = await self.orphans.entries(limit=limit)
        resolved = 0
        for entry in entries:
            try:
                await self.asset_store.delete(entry["deletion_key"])
            except Exception as e:
                await self.orphans.bump(entry["id"], str(e))
                self.logger.debug(f"Orphan {entry['deletion_key']} still pending: {e}")
                continue
            await self.orphans.resolve(entry["id"])
            resolved += 1

        summary = {"checked": len(entries), "resolved": resolved, "remaining": len(entries) - resolved}
        self.logger.info(f"Orphan sweep finished: {summary}")
        return summary

    async def sweep_staged(
        self, staging: UploadStaging, max_age: int | None = None, limit: int = 1000
    ) -> dict[str, Any]:
        """
        清理超时未挂载的草稿图片

        先认领暂存记录再删除远端资源，与并发的房源创建不会争用同一张图片；
        远端删除失败的图片记入孤儿台账。

        Args:
            staging: 草稿暂存区
            max_age: 最长暂存秒数，默认取 media.staging_ttl

        Returns:
            {"checked": n, "released": n, "orphaned": n}
        """
        max_age = self.staging_ttl if max_age is None else max(0, int(max_age))
        entries = await staging.expired(max_age, limit=limit)
        released = orphaned = 0
        for entry in entries:
            owner_id = entry["owner_id"]
            handle = await staging.claim(owner_id, entry["url"])
            if handle is None:
                continue
            if await self._delete_remote(handle, source=f"draft:{owner_id}"):
                released += 1
            else:
                orphaned += 1

        summary = {"checked": len(entries), "released": released, "orphaned": orphaned}
        self.logger.info(f"Staged upload sweep finished: {summary}")
        return summary
