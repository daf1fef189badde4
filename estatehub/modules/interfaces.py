"""
服务接口抽象层
Service Interface Layer

定义远端存储与生命周期服务的抽象接口，实现依赖倒置
"""

from abc import ABC, abstractmethod
from typing import Any


class IAssetStore(ABC):
    """远端图片存储接口。"""

    @abstractmethod
    async def upload(self, payload: Any, metadata: dict[str, Any] | None = None) -> Any:
        """
        上传单个文件

        Args:
            payload: UploadPayload
            metadata: 额外元数据

        Returns:
            AssetHandle: 资源句柄
        """
        pass

    @abstractmethod
    async def delete(self, deletion_key: str) -> bool:
        """
        删除远端资源

        Args:
            deletion_key: 删除凭据

        Returns:
            是否成功
        """
        pass


class IListingLifecycleService(ABC):
    """房源生命周期接口定义。"""

    @abstractmethod
    async def create_listing(self, caller_id: str, fields: dict[str, Any]) -> Any:
        pass

    @abstractmethod
    async def get_listing(self, listing_id: str) -> Any:
        pass

    @abstractmethod
    async def update_listing(
        self, caller_id: str, listing_id: str, changes: dict[str, Any], expected_version: int | None = None
    ) -> Any:
        pass

    @abstractmethod
    async def delete_listing(self, caller_id: str, listing_id: str) -> None:
        pass


class IProfileLifecycleService(ABC):
    """用户资料生命周期接口定义。"""

    @abstractmethod
    async def get_user(self, user_id: str) -> Any:
        pass

    @abstractmethod
    async def update_user(
        self, caller_id: str, user_id: str, changes: dict[str, Any], expected_version: int | None = None
    ) -> Any:
        pass

    @abstractmethod
    async def delete_user(self, caller_id: str, user_id: str) -> None:
        pass
