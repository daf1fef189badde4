"""
远端图片存储客户端
Asset Store Client

通过 HTTP 调用 Cloudinary 兼容接口上传/删除图片
"""

from __future__ import annotations

import hashlib
import time
from typing import Any

import httpx

from estatehub.core.config import get_config
from estatehub.core.error_handler import AssetStoreError, UpstreamUnavailableError, retry
from estatehub.core.logger import get_logger
from estatehub.modules.assets.models import AssetHandle, UploadPayload
from estatehub.modules.interfaces import IAssetStore


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """按键名排序拼接参数后追加密钥做 SHA1 签名。"""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class AssetStoreClient(IAssetStore):
    """
    远端图片存储客户端

    传输层失败（网络错误、超时、5xx）统一抛出 UpstreamUnavailableError 并按配置重试；
    4xx 或业务拒绝抛出 AssetStoreError，不重试。
    """

    def __init__(self, config: dict | None = None, transport: httpx.AsyncBaseTransport | None = None):
        """
        初始化客户端

        Args:
            config: asset_store 配置段
            transport: 自定义 httpx 传输层（测试时注入 MockTransport）
        """
        self.config = config or get_config().asset_store
        self.logger = get_logger()
        self.base_url = str(self.config.get("base_url", "https://api.cloudinary.com/v1_1")).rstrip("/")
        self.cloud_name = str(self.config.get("cloud_name") or "")
        self.upload_preset = str(self.config.get("upload_preset") or "")
        self.api_key = str(self.config.get("api_key") or "")
        self.api_secret = str(self.config.get("api_secret") or "")
        self.timeout = float(self.config.get("timeout", 30.0))
        self.retry_times = int(self.config.get("retry_times", 2))
        self.retry_delay = float(self.config.get("retry_delay", 0.5))
        self._transport = transport

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}/{self.cloud_name}/image/upload"

    @property
    def destroy_url(self) -> str:
        return f"{self.base_url}/{self.cloud_name}/image/destroy"

    async def upload(self, payload: UploadPayload, metadata: dict[str, Any] | None = None) -> AssetHandle:
        """
        上传单个文件

        Args:
            payload: 文件内容
            metadata: 额外表单字段（如 folder、tags）

        Returns:
            AssetHandle
        """
        data: dict[str, Any] = {"upload_preset": self.upload_preset}
        data.update(metadata or {})
        files = {"file": (payload.filename, payload.content, payload.content_type)}

        body = await self._post_with_retry(self.upload_url, data=data, files=files)

        url = body.get("secure_url") or body.get("url")
        public_id = body.get("public_id")
        if not url or not public_id:
            raise AssetStoreError(
                "Asset store response missing url/public_id",
                {"filename": payload.filename, "response": body},
            )

        self.logger.debug(f"Uploaded {payload.filename} -> {public_id}")
        return AssetHandle(url=str(url), deletion_key=str(public_id))

    async def delete(self, deletion_key: str) -> bool:
        """
        删除远端资源

        远端返回 not found 视为已删除

        Returns:
            True
        """
        params: dict[str, Any] = {"public_id": deletion_key, "timestamp": int(time.time())}
        data = {**params, "api_key": self.api_key, "signature": sign_params(params, self.api_secret)}

        body = await self._post_with_retry(self.destroy_url, data=data)

        result = str(body.get("result", "")).lower()
        if result == "ok":
            self.logger.debug(f"Deleted remote asset {deletion_key}")
            return True
        if result == "not found":
            self.logger.debug(f"Remote asset {deletion_key} already gone")
            return True
        raise AssetStoreError(
            f"Asset deletion failed: {result or 'unknown result'}",
            {"deletion_key": deletion_key, "response": body},
        )

    async def _post_with_retry(self, url: str, **kwargs) -> dict[str, Any]:
        send = retry(
            max_attempts=self.retry_times,
            delay=self.retry_delay,
            exceptions=(UpstreamUnavailableError,),
        )(self._post)
        return await send(url, **kwargs)

    async def _post(self, url: str, **kwargs) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, **kwargs)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError(f"Asset store request timed out: {exc}", {"url": url}) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Asset store request failed: {exc}", {"url": url}) from exc

        if response.status_code >= 500:
            raise UpstreamUnavailableError(
                f"Asset store http {response.status_code}",
                {"url": url, "status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise AssetStoreError(f"Asset store invalid json: {exc}", {"url": url}) from exc

        if not isinstance(body, dict):
            raise AssetStoreError("Asset store returned non-object json", {"url": url})

        if response.status_code >= 400:
            error = body.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            raise AssetStoreError(
                f"Asset store http {response.status_code}: {message or 'rejected'}",
                {"url": url, "status_code": response.status_code},
            )
        return body
