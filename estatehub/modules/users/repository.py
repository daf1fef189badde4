"""
用户仓储
User Repository

用户记录的增删改查；用户名与邮箱唯一，密码仅以哈希形式保存
"""

from __future__ import annotations

from typing import Any

from estatehub.core.config import get_config
from estatehub.core.error_handler import ConflictError, NotFoundError, ValidationError
from estatehub.core.logger import get_logger
from estatehub.core.passwords import hash_password, verify_password
from estatehub.core.store import DocumentStore
from estatehub.modules.assets.models import AssetHandle
from estatehub.modules.users.models import (
    EDITABLE_FIELDS,
    User,
    normalize_email,
    normalize_username,
    validate_password,
)

COLLECTION = "users"

_UNSET = object()


class UserRepository:
    """用户仓储"""

    def __init__(self, store: DocumentStore, config: dict | None = None) -> None:
        self.store = store
        self.config = config or get_config().security
        self.logger = get_logger()
        self.bcrypt_rounds = int(self.config.get("bcrypt_rounds", 12))

    async def _ensure_unique(self, field: str, value: str, exclude_id: str | None = None) -> None:
        existing = await self.store.find_one(COLLECTION, field, value)
        if existing and existing["id"] != exclude_id:
            raise ValidationError(field, "unique", f"{field} is already taken")

    async def create(self, username: str, email: str, password: str) -> User:
        """
        创建用户（供注册流程调用）

        Raises:
            ValidationError
        """
        username = normalize_username(username)
        email = normalize_email(email)
        password = validate_password(password)
        await self._ensure_unique("username", username)
        await self._ensure_unique("email", email)

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
        )
        doc = await self.store.insert(COLLECTION, user.to_document())
        return User.from_document(doc)

    async def get_by_id(self, user_id: str) -> User:
        """
        Raises:
            NotFoundError
        """
        doc = await self.store.get(COLLECTION, user_id)
        if doc is None:
            raise NotFoundError("user", user_id)
        return User.from_document(doc)

    async def get_by_email(self, email: str) -> User:
        doc = await self.store.find_one(COLLECTION, "email", str(email).strip().lower())
        if doc is None:
            raise NotFoundError("user", email)
        return User.from_document(doc)

    async def verify_credentials(self, email: str, password: str) -> bool:
        try:
            user = await self.get_by_email(email)
        except NotFoundError:
            return False
        return verify_password(password, user.password_hash)

    async def update(
        self,
        user_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
        avatar: AssetHandle | None | object = _UNSET,
    ) -> User:
        """
        部分更新用户

        未提供的字段保持不变；仅在提供非空新密码时重新计算哈希。
        头像只能通过 avatar 参数由资料服务在上传确认后写入。

        Raises:
            NotFoundError, ValidationError, ConflictError
        """
        current = await self.get_by_id(user_id)
        if expected_version is not None and int(expected_version) != current.version:
            raise ConflictError(
                "User was modified by another request",
                {"expected_version": expected_version, "current_version": current.version},
            )

        for name in changes:
            if name == "avatar":
                raise ValidationError("avatar", "attach_required", "avatar must be uploaded through the avatar flow")
            if name not in EDITABLE_FIELDS:
                raise ValidationError(name, "unknown_field", f"Unknown user field '{name}'")

        updated = User.from_document({**current.to_document(), "id": current.id})
        if "username" in changes:
            updated.username = normalize_username(changes["username"])
            await self._ensure_unique("username", updated.username, exclude_id=current.id)
        if "email" in changes:
            updated.email = normalize_email(changes["email"])
            await self._ensure_unique("email", updated.email, exclude_id=current.id)
        if changes.get("password"):
            updated.password_hash = hash_password(validate_password(changes["password"]), rounds=self.bcrypt_rounds)
        if avatar is not _UNSET:
            updated.avatar = avatar

        doc = await self.store.replace(COLLECTION, user_id, updated.to_document())
        if doc is None:
            raise NotFoundError("user", user_id)
        return User.from_document(doc)

    async def delete(self, user_id: str) -> None:
        """
        Raises:
            NotFoundError
        """
        if not await self.store.delete(COLLECTION, user_id):
            raise NotFoundError("user", user_id)
