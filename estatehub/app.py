"""
应用装配
Application Wiring

根据配置创建文档存储、远端存储客户端、图片协调器、仓储与服务
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from estatehub.core.config import Config, get_config
from estatehub.core.store import DocumentStore
from estatehub.modules.api.resources import ResourceAPI
from estatehub.modules.assets.client import AssetStoreClient
from estatehub.modules.auth.guard import AuthorizationGuard
from estatehub.modules.interfaces import IAssetStore
from estatehub.modules.listings.repository import ListingRepository
from estatehub.modules.listings.service import ListingLifecycleService
from estatehub.modules.media.coordinator import MediaAssetCoordinator
from estatehub.modules.media.orphans import OrphanLedger
from estatehub.modules.media.staging import UploadStaging
from estatehub.modules.users.repository import UserRepository
from estatehub.modules.users.service import ProfileLifecycleService


@dataclass
class EstateHub:
    store: DocumentStore
    asset_store: IAssetStore
    orphans: OrphanLedger
    staging: UploadStaging
    coordinator: MediaAssetCoordinator
    listing_repository: ListingRepository
    user_repository: UserRepository
    listings: ListingLifecycleService
    profiles: ProfileLifecycleService
    api: ResourceAPI


def build_app(
    config: Config | None = None,
    asset_store: IAssetStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> EstateHub:
    """
    装配应用

    Args:
        config: 配置实例，默认使用全局配置
        asset_store: 自定义远端存储实现
        transport: 传给默认 AssetStoreClient 的 httpx 传输层

    Returns:
        EstateHub
    """
    config = config or get_config()
    database = config.database

    store = DocumentStore(database.get("path", "data/estatehub.db"), timeout=database.get("timeout", 30))
    asset_store = asset_store or AssetStoreClient(config.asset_store, transport=transport)
    orphans = OrphanLedger(store)
    staging = UploadStaging(store)
    coordinator = MediaAssetCoordinator(asset_store, orphans, config.media)
    guard = AuthorizationGuard()

    listing_repository = ListingRepository(store, config.media)
    user_repository = UserRepository(store, config.security)
    listings = ListingLifecycleService(listing_repository, coordinator, staging, guard)
    profiles = ProfileLifecycleService(user_repository, coordinator, guard)

    return EstateHub(
        store=store,
        asset_store=asset_store,
        orphans=orphans,
        staging=staging,
        coordinator=coordinator,
        listing_repository=listing_repository,
        user_repository=user_repository,
        listings=listings,
        profiles=profiles,
        api=ResourceAPI(listings, profiles),
    )
