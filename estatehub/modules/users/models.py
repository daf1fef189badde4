"""用户数据模型。"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from estatehub.core.error_handler import ValidationError
from estatehub.modules.assets.models import AssetHandle

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6

EDITABLE_FIELDS = frozenset({"username", "email", "password"})


@dataclass
class User:
    """用户；密码哈希不参与任何对外序列化"""
    username: str
    email: str
    password_hash: str = field(default="", repr=False)
    avatar: Optional[AssetHandle] = None
    id: Optional[str] = None
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "avatar": self.avatar.url if self.avatar else None,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_document(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "email": self.email,
            "password_hash": self.password_hash,
            "avatar": self.avatar.to_dict() if self.avatar else None,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "User":
        avatar = doc.get("avatar")
        return cls(
            id=doc.get("id"),
            username=doc["username"],
            email=doc["email"],
            password_hash=doc.get("password_hash", ""),
            avatar=AssetHandle.from_dict(avatar) if avatar else None,
            version=int(doc.get("version") or 0),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


def normalize_username(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("username", "required", "username is required")
    username = value.strip()
    if not username:
        raise ValidationError("username", "not_empty", "username must not be empty")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError("username", "max_length", f"username must be at most {USERNAME_MAX_LENGTH} characters")
    return username


def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("email", "required", "email is required")
    email = value.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("email", "format", "email is not a valid address")
    return email


def validate_password(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("password", "required", "password is required")
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValidationError("password", "min_length", f"password must be at least {PASSWORD_MIN_LENGTH} characters")
    return value
