"""客户端资源缓存（按资源ID，仅以服务端确认的结果更新）。"""

import time
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class ResourceCacheEntry:
    value: dict[str, Any]
    stored_at: float


class ResourceCache:
    def __init__(self, kind: str, ttl_seconds: int = 0):
        self.kind = kind
        self.ttl_seconds = max(0, ttl_seconds)
        self._entries: dict[str, ResourceCacheEntry] = {}

    def get(self, resource_id: str) -> dict[str, Any] | None:
        entry = self._entries.get(resource_id)
        if not entry:
            return None
        if self.ttl_seconds and entry.stored_at + self.ttl_seconds < time.time():
            self._entries.pop(resource_id, None)
            return None
        return dict(entry.value)

    def put(self, value: dict[str, Any]) -> None:
        resource_id = value.get("id")
        if not resource_id:
            return
        self._entries[str(resource_id)] = ResourceCacheEntry(value=dict(value), stored_at=time.time())

    def apply(self, envelope: dict[str, Any]) -> None:
        """用成功响应中的记录整体替换缓存；失败响应不改变缓存。"""
        if envelope.get("success") and isinstance(envelope.get("data"), dict):
            self.put(envelope["data"])
            return
        record = (envelope.get("details") or {}).get("record")
        if isinstance(record, dict):
            # 部分失败时记录已保存，以服务端返回的记录为准
            self.put(record)

    def invalidate(self, resource_id: str) -> None:
        self._entries.pop(str(resource_id), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
