"""远端图片资源数据模型。"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class AssetHandle:
    """
    远端图片句柄

    url 用于展示，deletion_key 仅用于清理，不对外展示
    """

    url: str
    deletion_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "deletion_key": self.deletion_key}

    def to_public_dict(self) -> dict[str, Any]:
        return {"url": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssetHandle":
        return cls(url=str(data["url"]), deletion_key=str(data["deletion_key"]))


@dataclass(frozen=True, slots=True)
class UploadPayload:
    """待上传的原始文件。"""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower().lstrip(".")

    @property
    def size(self) -> int:
        return len(self.content)
