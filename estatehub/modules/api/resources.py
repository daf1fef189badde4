"""
资源接口层
Resource API

把生命周期服务的结果与异常统一转换为响应信封：
- 成功：{"success": True, "statusCode": 200, "data": {...}}
- 失败：{"success": False, "statusCode": 4xx/5xx, "error": "...", "message": "...", "details": {...}}

同时维护按资源ID的客户端缓存，只在服务端确认后更新
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from estatehub.core.error_handler import EstateError
from estatehub.core.logger import get_logger
from estatehub.modules.api.cache import ResourceCache
from estatehub.modules.assets.models import UploadPayload
from estatehub.modules.listings.service import ListingLifecycleService
from estatehub.modules.users.service import ProfileLifecycleService


def ok(data: Any, status_code: int = 200) -> dict[str, Any]:
    return {"success": True, "statusCode": status_code, "data": data}


def fail(error: EstateError) -> dict[str, Any]:
    payload = error.to_dict()
    return {
        "success": False,
        "statusCode": error.status_code,
        "error": payload["type"],
        "message": payload["message"],
        "details": payload["details"],
    }


class ResourceAPI:
    """房源与用户资源的对外接口"""

    def __init__(self, listings: ListingLifecycleService, profiles: ProfileLifecycleService):
        self.listings = listings
        self.profiles = profiles
        self.logger = get_logger()
        self.listing_cache = ResourceCache("listing")
        self.user_cache = ResourceCache("user")

    async def _call(self, operation: str, func: Callable[[], Awaitable[Any]], status_code: int = 200) -> dict[str, Any]:
        try:
            result = await func()
        except EstateError as e:
            self.logger.debug(f"{operation} rejected: {e.__class__.__name__}: {e.message}")
            return fail(e)
        except Exception as e:
            self.logger.exception(f"{operation} failed unexpectedly: {e}")
            return {
                "success": False,
                "statusCode": 500,
                "error": "InternalError",
                "message": "Internal server error",
                "details": {},
            }
        data = result.to_dict() if hasattr(result, "to_dict") else result
        return ok(data, status_code)

    # ------------------------------------------------------------------
    # listings
    # ------------------------------------------------------------------

    async def upload_images(self, caller_id: str, files: list[UploadPayload], existing_count: int = 0) -> dict[str, Any]:
        async def _run():
            handles = await self.listings.upload_images(caller_id, files, existing_count=existing_count)
            return [h.to_public_dict() for h in handles]

        return await self._call("upload_images", _run)

    async def discard_upload(self, caller_id: str, url: str) -> dict[str, Any]:
        async def _run():
            await self.listings.discard_upload(caller_id, url)
            return {"url": url, "message": "Image has been discarded!"}

        return await self._call("discard_upload", _run)

    async def create_listing(self, caller_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        envelope = await self._call("create_listing", lambda: self.listings.create_listing(caller_id, fields), 201)
        self.listing_cache.apply(envelope)
        return envelope

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        envelope = await self._call("get_listing", lambda: self.listings.get_listing(listing_id))
        if envelope["success"]:
            self.listing_cache.apply(envelope)
        elif envelope["statusCode"] == 404:
            self.listing_cache.invalidate(listing_id)
        return envelope

    async def update_listing(
        self,
        caller_id: str,
        listing_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        envelope = await self._call(
            "update_listing",
            lambda: self.listings.update_listing(caller_id, listing_id, changes, expected_version=expected_version),
        )
        self.listing_cache.apply(envelope)
        return envelope

    async def add_images(self, caller_id: str, listing_id: str, files: list[UploadPayload]) -> dict[str, Any]:
        envelope = await self._call("add_images", lambda: self.listings.add_images(caller_id, listing_id, files))
        self.listing_cache.apply(envelope)
        return envelope

    async def remove_image(self, caller_id: str, listing_id: str, url: str) -> dict[str, Any]:
        envelope = await self._call("remove_image", lambda: self.listings.remove_image(caller_id, listing_id, url))
        self.listing_cache.apply(envelope)
        return envelope

    async def delete_listing(self, caller_id: str, listing_id: str) -> dict[str, Any]:
        async def _run():
            await self.listings.delete_listing(caller_id, listing_id)
            return {"id": listing_id, "message": "Listing has been deleted!"}

        envelope = await self._call("delete_listing", _run)
        if envelope["success"]:
            self.listing_cache.invalidate(listing_id)
        return envelope

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> dict[str, Any]:
        envelope = await self._call("get_user", lambda: self.profiles.get_user(user_id))
        if envelope["success"]:
            self.user_cache.apply(envelope)
        return envelope

    async def update_user(
        self,
        caller_id: str,
        user_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        envelope = await self._call(
            "update_user",
            lambda: self.profiles.update_user(caller_id, user_id, changes, expected_version=expected_version),
        )
        self.user_cache.apply(envelope)
        return envelope

    async def replace_avatar(self, caller_id: str, user_id: str, file: UploadPayload) -> dict[str, Any]:
        envelope = await self._call("replace_avatar", lambda: self.profiles.replace_avatar(caller_id, user_id, file))
        self.user_cache.apply(envelope)
        return envelope

    async def remove_avatar(self, caller_id: str, user_id: str) -> dict[str, Any]:
        envelope = await self._call("remove_avatar", lambda: self.profiles.remove_avatar(caller_id, user_id))
        self.user_cache.apply(envelope)
        return envelope

    async def delete_user(self, caller_id: str, user_id: str) -> dict[str, Any]:
        async def _run():
            await self.profiles.delete_user(caller_id, user_id)
            return {"id": user_id, "message": "User has been deleted!"}

        envelope = await self._call("delete_user", _run)
        if envelope["success"]:
            self.user_cache.invalidate(user_id)
        return envelope
