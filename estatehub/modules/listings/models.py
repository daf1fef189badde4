"""
房源数据模型
Listing Models

定义房源结构、字段校验与序列化
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any, Optional

from estatehub.core.error_handler import ValidationError
from estatehub.modules.assets.models import AssetHandle

ROOM_COUNT_RANGE = (1, 10)

TEXT_FIELDS = ("title", "description", "address")
FLAG_FIELDS = ("has_offer", "has_parking", "is_furnished")
EDITABLE_FIELDS = frozenset(
    TEXT_FIELDS
    + FLAG_FIELDS
    + ("transaction_type", "bedrooms", "bathrooms", "regular_price", "discount_price", "images")
)
IMMUTABLE_FIELDS = frozenset({"id", "owner_id", "created_at", "updated_at", "version"})


class TransactionType(str, Enum):
    """交易类型"""
    SALE = "sale"
    RENT = "rent"


@dataclass
class Listing:
    """房源"""
    owner_id: str
    title: str
    description: str
    address: str
    transaction_type: str
    bedrooms: int
    bathrooms: int
    regular_price: float
    discount_price: Optional[float] = None
    has_offer: bool = False
    has_parking: bool = False
    is_furnished: bool = False
    images: list[AssetHandle] = field(default_factory=list)
    id: Optional[str] = None
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def cover_image(self) -> Optional[AssetHandle]:
        return self.images[0] if self.images else None

    def to_dict(self) -> dict[str, Any]:
        """对外展示结构，不包含删除凭据"""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "address": self.address,
            "transaction_type": self.transaction_type,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "regular_price": self.regular_price,
            "discount_price": self.discount_price,
            "has_offer": self.has_offer,
            "has_parking": self.has_parking,
            "is_furnished": self.is_furnished,
            "images": [h.to_public_dict() for h in self.images],
            "cover_image": self.cover_image.url if self.cover_image else None,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_document(self) -> dict[str, Any]:
        """持久化结构"""
        return {
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "address": self.address,
            "transaction_type": self.transaction_type,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "regular_price": self.regular_price,
            "discount_price": self.discount_price,
            "has_offer": self.has_offer,
            "has_parking": self.has_parking,
            "is_furnished": self.is_furnished,
            "images": [h.to_dict() for h in self.images],
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Listing":
        return cls(
            id=doc.get("id"),
            owner_id=doc["owner_id"],
            title=doc["title"],
            description=doc["description"],
            address=doc["address"],
            transaction_type=doc["transaction_type"],
            bedrooms=doc["bedrooms"],
            bathrooms=doc["bathrooms"],
            regular_price=doc["regular_price"],
            discount_price=doc.get("discount_price"),
            has_offer=bool(doc.get("has_offer", False)),
            has_parking=bool(doc.get("has_parking", False)),
            is_furnished=bool(doc.get("is_furnished", False)),
            images=[AssetHandle.from_dict(item) for item in doc.get("images", [])],
            version=int(doc.get("version") or 0),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def reject_unknown_fields(fields: dict[str, Any]) -> None:
    for name in fields:
        if name in IMMUTABLE_FIELDS:
            raise ValidationError(name, "immutable", f"'{name}' cannot be set by the caller")
        if name not in EDITABLE_FIELDS:
            raise ValidationError(name, "unknown_field", f"Unknown listing field '{name}'")


def normalize_listing_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """
    规范化字段

    - 文本去除首尾空白
    - 图片统一转为 AssetHandle
    - 无优惠时清空优惠价
    """
    data = dict(fields)
    for name in TEXT_FIELDS:
        if isinstance(data.get(name), str):
            data[name] = data[name].strip()
    if isinstance(data.get("transaction_type"), TransactionType):
        data["transaction_type"] = data["transaction_type"].value
    if "images" in data and isinstance(data["images"], list):
        images = []
        for index, item in enumerate(data["images"]):
            if isinstance(item, AssetHandle):
                images.append(item)
            elif isinstance(item, dict) and item.get("url") and item.get("deletion_key"):
                images.append(AssetHandle.from_dict(item))
            else:
                raise ValidationError(f"images[{index}]", "asset_handle", "Image must be an uploaded asset handle")
        data["images"] = images
    if data.get("has_offer") is False:
        data["discount_price"] = None
    return data


def validate_listing(data: dict[str, Any], min_images: int = 1, max_images: int = 7) -> None:
    """
    校验完整的房源状态（创建或合并后的更新结果）

    Raises:
        ValidationError: 第一个不满足的字段规则
    """
    for name in TEXT_FIELDS:
        value = data.get(name)
        if not isinstance(value, str):
            raise ValidationError(name, "required", f"'{name}' is required")
        if not value:
            raise ValidationError(name, "not_empty", f"'{name}' must not be empty")

    if data.get("transaction_type") not in {t.value for t in TransactionType}:
        raise ValidationError("transaction_type", "choice", "transaction_type must be 'sale' or 'rent'")

    low, high = ROOM_COUNT_RANGE
    for name in ("bedrooms", "bathrooms"):
        value = data.get(name)
        if not _is_int(value):
            raise ValidationError(name, "integer", f"'{name}' must be an integer")
        if not low <= value <= high:
            raise ValidationError(name, "range", f"'{name}' must be between {low} and {high}")

    regular_price = data.get("regular_price")
    if not _is_number(regular_price):
        raise ValidationError("regular_price", "number", "regular_price must be a number")
    if regular_price <= 0:
        raise ValidationError("regular_price", "positive", "regular_price must be positive")

    for name in FLAG_FIELDS:
        if not isinstance(data.get(name, False), bool):
            raise ValidationError(name, "boolean", f"'{name}' must be true or false")

    if data.get("has_offer"):
        discount_price = data.get("discount_price")
        if discount_price is None:
            raise ValidationError("discount_price", "required", "discount_price is required when has_offer is set")
        if not _is_number(discount_price):
            raise ValidationError("discount_price", "number", "discount_price must be a number")
        if discount_price < 0:
            raise ValidationError("discount_price", "non_negative", "discount_price must not be negative")
        if discount_price >= regular_price:
            raise ValidationError(
                "discount_price", "less_than_regular_price", "Discount must be less than regular price"
            )

    images = data.get("images")
    if not isinstance(images, list):
        raise ValidationError("images", "required", "images are required")
    if len(images) < min_images:
        raise ValidationError("images", "min_length", f"At least {min_images} image(s) required")
    if len(images) > max_images:
        raise ValidationError("images", "max_length", f"At most {max_images} images allowed")
    keys = [h.deletion_key for h in images]
    if len(set(keys)) != len(keys):
        raise ValidationError("images", "unique", "The same image cannot appear twice in a gallery")
