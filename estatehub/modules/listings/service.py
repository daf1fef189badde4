"""
房源生命周期服务
Listing Lifecycle Service

组合权限守卫、房源仓储与图片协调器，实现房源的创建、读取、更新与删除

状态流转：Draft（客户端草稿） -> Created -> Updated -> Deleted（终态）
"""

from __future__ import annotations

import asyncio
import weakref
from typing import Any

from estatehub.core.error_handler import (
    EstateError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from estatehub.core.logger import get_logger
from estatehub.modules.assets.models import AssetHandle, UploadPayload
from estatehub.modules.auth.guard import AuthorizationGuard, Relation
from estatehub.modules.interfaces import IListingLifecycleService
from estatehub.modules.listings.models import Listing
from estatehub.modules.listings.repository import ListingRepository
from estatehub.modules.media.coordinator import MediaAssetCoordinator
from estatehub.modules.media.staging import UploadStaging


def _image_url(item: Any, field: str) -> str:
    if isinstance(item, AssetHandle):
        return item.url
    if isinstance(item, dict) and item.get("url"):
        return str(item["url"])
    if isinstance(item, str) and item.strip():
        return item.strip()
    raise ValidationError(field, "image_reference", "Image must be referenced by its url")


class ListingLifecycleService(IListingLifecycleService):
    """
    房源生命周期服务

    所有变更操作先检查存在性（NotFound），再检查所有权（Forbidden）。
    同一房源的变更在进程内串行执行，图集容量检查因此是确定性的：
    对 6 张图的房源并发追加两批各 1 张，先获得锁的一批成功，另一批被拒绝。
    """

    def __init__(
        self,
        repository: ListingRepository,
        coordinator: MediaAssetCoordinator,
        staging: UploadStaging,
        guard: AuthorizationGuard | None = None,
    ):
        self.repository = repository
        self.coordinator = coordinator
        self.staging = staging
        self.guard = guard or AuthorizationGuard()
        self.logger = get_logger()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, listing_id: str) -> asyncio.Lock:
        lock = self._locks.get(listing_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[listing_id] = lock
        return lock

    @staticmethod
    def _source(listing_id: str) -> str:
        return f"listing:{listing_id}"

    async def _load_owned(self, caller_id: str, listing_id: str) -> Listing:
        caller = self.guard.ensure_authenticated(caller_id)
        listing = await self.repository.get_by_id(listing_id)
        self.guard.require(caller, listing.owner_id, Relation.OWNER, resource="listing")
        return listing

    # ------------------------------------------------------------------
    # Draft
    # ------------------------------------------------------------------

    async def upload_images(
        self, caller_id: str, payloads: list[UploadPayload], existing_count: int = 0
    ) -> list[AssetHandle]:
        """
        草稿阶段上传图片

        成功的图片进入调用方暂存区，创建房源时凭 url 引用。
        部分失败时成功的图片同样进入暂存区，再抛出 PartialFailureError。

        Args:
            caller_id: 调用方ID
            payloads: 图片文件
            existing_count: 草稿中已有的图片数

        Returns:
            上传成功的句柄
        """
        caller = self.guard.ensure_authenticated(caller_id)
        try:
            handles = await self.coordinator.attach(payloads, current_count=existing_count)
        except PartialFailureError as e:
            await self.staging.stage(caller, e.uploaded)
            raise
        await self.staging.stage(caller, handles)
        return handles

    async def discard_upload(self, caller_id: str, url: str) -> None:
        """从草稿中移除尚未挂载的图片并派发远端删除"""
        caller = self.guard.ensure_authenticated(caller_id)
        handle = await self.staging.claim(caller, url)
        if handle is None:
            raise NotFoundError("upload", url)
        self.coordinator.detach([handle], source=f"draft:{caller}")

    async def _claim_staged(self, caller: str, images: Any) -> list[AssetHandle]:
        """认领暂存图片；任一图片无法认领时归还已认领的部分"""
        if not isinstance(images, list):
            raise ValidationError("images", "required", "images are required")
        handles: list[AssetHandle] = []
        try:
            for index, item in enumerate(images):
                field = f"images[{index}]"
                url = _image_url(item, field)
                handle = await self.staging.claim(caller, url)
                if handle is None:
                    raise ValidationError(field, "unknown_asset", f"Image {url} was not uploaded by this user")
                handles.append(handle)
        except EstateError:
            await self.staging.stage(caller, handles)
            raise
        return handles

    # ------------------------------------------------------------------
    # Draft -> Created
    # ------------------------------------------------------------------

    async def create_listing(self, caller_id: str, fields: dict[str, Any]) -> Listing:
        """
        创建房源，调用方成为所有者

        Args:
            caller_id: 已认证的调用方ID
            fields: 房源字段，images 为已上传图片的 url 列表（首张为封面）

        Returns:
            Listing
        """
        caller = self.guard.ensure_authenticated(caller_id)
        data = dict(fields)
        claimed: list[AssetHandle] = []
        if "images" in data:
            claimed = await self._claim_staged(caller, data["images"])
            data["images"] = claimed

        try:
            listing = await self.repository.create(caller, data)
        except Exception:
            # 创建失败时图片回到暂存区，可在下次创建时重新引用
            await self.staging.stage(caller, claimed)
            raise

        self.logger.success(f"Listing created: {listing.id} by {caller} ({len(listing.images)} images)")
        return listing

    async def get_listing(self, listing_id: str) -> Listing:
        return await self.repository.get_by_id(listing_id)

    # ------------------------------------------------------------------
    # Created/Updated -> Updated
    # ------------------------------------------------------------------

    async def update_listing(
        self,
        caller_id: str,
        listing_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> Listing:
        """
        部分更新房源

        images 只能是当前图集的重排或子集；新图片需通过 add_images 追加。
        被移出图集的图片在记录保存后派发远端删除。

        Args:
            caller_id: 调用方ID
            listing_id: 房源ID
            changes: 待修改字段
            expected_version: 期望版本号，省略则后写覆盖

        Returns:
            更新后的 Listing
        """
        async with self._lock_for(listing_id):
            current = await self._load_owned(caller_id, listing_id)

            data = dict(changes)
            removed: list[AssetHandle] = []
            if "images" in data:
                data["images"] = self._resolve_existing(current, data["images"])
                kept = {h.deletion_key for h in data["images"]}
                removed = [h for h in current.images if h.deletion_key not in kept]

            updated = await self.repository.update(listing_id, data, expected_version=expected_version)
            if removed:
                self.coordinator.detach(removed, source=self._source(listing_id))

        self.logger.info(f"Listing updated: {listing_id} (v{updated.version})")
        return updated

    @staticmethod
    def _resolve_existing(current: Listing, images: Any) -> list[AssetHandle]:
        if not isinstance(images, list):
            raise ValidationError("images", "required", "images are required")
        by_url = {h.url: h for h in current.images}
        handles = []
        for index, item in enumerate(images):
            field = f"images[{index}]"
            url = _image_url(item, field)
            if url not in by_url:
                raise ValidationError(field, "unknown_asset", f"Image {url} is not part of this listing")
            handles.append(by_url[url])
        return handles

    async def add_images(self, caller_id: str, listing_id: str, payloads: list[UploadPayload]) -> Listing:
        """
        向已有房源追加图片

        容量在上传前检查，超限整体拒绝；上传成功的图片追加到图集末尾并保存，
        若有文件失败，保存后抛出携带最新记录的 PartialFailureError。

        Returns:
            更新后的 Listing
        """
        async with self._lock_for(listing_id):
            current = await self._load_owned(caller_id, listing_id)
            try:
                handles = await self.coordinator.attach(payloads, current_count=len(current.images))
            except PartialFailureError as e:
                if not e.uploaded:
                    raise
                updated = await self._append(current, e.uploaded)
                raise PartialFailureError(e.uploaded, e.failures, record=updated.to_dict()) from e

            updated = await self._append(current, handles)

        self.logger.info(f"Attached {len(handles)} image(s) to listing {listing_id}")
        return updated

    async def _append(self, current: Listing, handles: list[AssetHandle]) -> Listing:
        try:
            return await self.repository.update(current.id, {"images": current.images + handles})
        except EstateError:
            # 未能挂载的图片不被任何记录引用
            self.coordinator.detach(handles, source=self._source(current.id))
            raise

    async def remove_image(self, caller_id: str, listing_id: str, url: str) -> Listing:
        """
        从图集中移除一张图片，保存后派发远端删除

        Raises:
            NotFoundError: 房源或图片不存在
            ValidationError: 移除后低于最少图片数
        """
        async with self._lock_for(listing_id):
            current = await self._load_owned(caller_id, listing_id)
            target = next((h for h in current.images if h.url == url), None)
            if target is None:
                raise NotFoundError("image", url)

            remaining = [h for h in current.images if h.deletion_key != target.deletion_key]
            updated = await self.repository.update(listing_id, {"images": remaining})
            self.coordinator.detach([target], source=self._source(listing_id))

        self.logger.info(f"Removed image from listing {listing_id}")
        return updated

    # ------------------------------------------------------------------
    # Created/Updated -> Deleted
    # ------------------------------------------------------------------

    async def delete_listing(self, caller_id: str, listing_id: str) -> None:
        """
        删除房源

        记录删除即视为完成；图集的远端清理在后台进行，失败记入孤儿台账
        """
        async with self._lock_for(listing_id):
            listing = await self._load_owned(caller_id, listing_id)
            await self.repository.delete(listing_id)
            self.coordinator.detach(listing.images, source=self._source(listing_id))

        self.logger.success(f"Listing deleted: {listing_id}")
