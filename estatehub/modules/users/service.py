"""
用户资料生命周期服务
Profile Lifecycle Service

用户只能修改或删除自己的账户；头像是单槽位图片，替换时先上传新图再删除旧图
"""

from __future__ import annotations

import asyncio
import weakref
from typing import Any

from estatehub.core.error_handler import EstateError, NotFoundError
from estatehub.core.logger import get_logger
from estatehub.modules.assets.models import UploadPayload
from estatehub.modules.auth.guard import AuthorizationGuard, Relation
from estatehub.modules.interfaces import IProfileLifecycleService
from estatehub.modules.media.coordinator import MediaAssetCoordinator
from estatehub.modules.users.models import User
from estatehub.modules.users.repository import UserRepository


class ProfileLifecycleService(IProfileLifecycleService):
    """用户资料生命周期服务"""

    def __init__(
        self,
        repository: UserRepository,
        coordinator: MediaAssetCoordinator,
        guard: AuthorizationGuard | None = None,
    ):
        self.repository = repository
        self.coordinator = coordinator
        self.guard = guard or AuthorizationGuard()
        self.logger = get_logger()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @staticmethod
    def _source(user_id: str) -> str:
        return f"user:{user_id}"

    async def _load_self(self, caller_id: str, user_id: str) -> User:
        caller = self.guard.ensure_authenticated(caller_id)
        user = await self.repository.get_by_id(user_id)
        self.guard.require(caller, user.id, Relation.SELF, resource="account")
        return user

    async def get_user(self, user_id: str) -> User:
        return await self.repository.get_by_id(user_id)

    async def update_user(
        self,
        caller_id: str,
        user_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> User:
        """
        部分更新账户

        Args:
            caller_id: 调用方ID
            user_id: 目标用户ID
            changes: username / email / password 中的任意子集，空密码视为未提供
            expected_version: 期望版本号

        Returns:
            更新后的 User（对外表示不含密码哈希）
        """
        async with self._lock_for(user_id):
            await self._load_self(caller_id, user_id)
            updated = await self.repository.update(user_id, changes, expected_version=expected_version)

        self.logger.info(f"User updated: {user_id} (v{updated.version})")
        return updated

    async def replace_avatar(self, caller_id: str, user_id: str, payload: UploadPayload) -> User:
        """
        替换头像

        新头像上传并保存成功后才派发旧头像的删除；保存失败则清理新头像，旧头像保持不变。

        Returns:
            更新后的 User
        """
        async with self._lock_for(user_id):
            current = await self._load_self(caller_id, user_id)
            handle = await self.coordinator.upload_one(payload, metadata={"folder": "avatars"})
            try:
                updated = await self.repository.update(user_id, {}, avatar=handle)
            except EstateError:
                self.coordinator.detach([handle], source=self._source(user_id))
                raise
            if current.avatar and current.avatar.deletion_key != handle.deletion_key:
                self.coordinator.detach([current.avatar], source=self._source(user_id))

        self.logger.success(f"Avatar replaced for user {user_id}")
        return updated

    async def remove_avatar(self, caller_id: str, user_id: str) -> User:
        """
        Raises:
            NotFoundError: 用户不存在或未设置头像
        """
        async with self._lock_for(user_id):
            current = await self._load_self(caller_id, user_id)
            if current.avatar is None:
                raise NotFoundError("avatar", user_id)
            updated = await self.repository.update(user_id, {}, avatar=None)
            self.coordinator.detach([current.avatar], source=self._source(user_id))

        self.logger.info(f"Avatar removed for user {user_id}")
        return updated

    async def delete_user(self, caller_id: str, user_id: str) -> None:
        """
        删除账户并释放头像

        用户名下的房源不级联删除。
        """
        async with self._lock_for(user_id):
            user = await self._load_self(caller_id, user_id)
            await self.repository.delete(user_id)
            if user.avatar:
                self.coordinator.detach([user.avatar], source=self._source(user_id))

        self.logger.success(f"User deleted: {user_id}")
