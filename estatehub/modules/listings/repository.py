"""
房源仓储
Listing Repository

房源记录的增删改查；持久化前校验全部数据不变量
"""

from __future__ import annotations

from typing import Any

from estatehub.core.config import get_config
from estatehub.core.error_handler import ConflictError, NotFoundError
from estatehub.core.logger import get_logger
from estatehub.core.store import DocumentStore
from estatehub.modules.listings.models import (
    Listing,
    normalize_listing_fields,
    reject_unknown_fields,
    validate_listing,
)

COLLECTION = "listings"


class ListingRepository:
    """房源仓储"""

    def __init__(self, store: DocumentStore, config: dict | None = None) -> None:
        self.store = store
        self.config = config or get_config().media
        self.logger = get_logger()
        self.min_images = int(self.config.get("min_gallery_size", 1))
        self.max_images = int(self.config.get("max_gallery_size", 7))

    async def create(self, owner_id: str, fields: dict[str, Any]) -> Listing:
        """
        创建房源

        Args:
            owner_id: 所有者ID
            fields: 房源字段

        Returns:
            Listing

        Raises:
            ValidationError
        """
        reject_unknown_fields(fields)
        data = normalize_listing_fields(
            {"has_offer": False, "has_parking": False, "is_furnished": False, "discount_price": None, **fields}
        )
        validate_listing(data, self.min_images, self.max_images)

        listing = Listing(owner_id=str(owner_id), **data)
        doc = await self.store.insert(COLLECTION, listing.to_document())
        return Listing.from_document(doc)

    async def get_by_id(self, listing_id: str) -> Listing:
        """
        Raises:
            NotFoundError
        """
        doc = await self.store.get(COLLECTION, listing_id)
        if doc is None:
            raise NotFoundError("listing", listing_id)
        return Listing.from_document(doc)

    async def update(
        self,
        listing_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> Listing:
        """
        部分更新：未提供的字段保持不变，合并后整体重新校验

        Args:
            listing_id: 房源ID
            changes: 待修改字段
            expected_version: 期望的当前版本号，不一致时拒绝写入

        Raises:
            NotFoundError, ValidationError, ConflictError
        """
        current = await self.get_by_id(listing_id)
        if expected_version is not None and int(expected_version) != current.version:
            raise ConflictError(
                "Listing was modified by another request",
                {"expected_version": expected_version, "current_version": current.version},
            )

        reject_unknown_fields(changes)
        merged = current.to_document()
        merged.pop("owner_id")
        merged["images"] = list(current.images)
        merged.update(changes)
        merged = normalize_listing_fields(merged)
        validate_listing(merged, self.min_images, self.max_images)

        updated = Listing(owner_id=current.owner_id, **merged)
        doc = await self.store.replace(COLLECTION, listing_id, updated.to_document())
        if doc is None:
            raise NotFoundError("listing", listing_id)
        return Listing.from_document(doc)

    async def delete(self, listing_id: str) -> None:
        """
        Raises:
            NotFoundError
        """
        if not await self.store.delete(COLLECTION, listing_id):
            raise NotFoundError("listing", listing_id)
