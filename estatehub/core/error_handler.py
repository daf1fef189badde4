"""
统一异常处理模块
Unified Error Handling

定义资源生命周期的错误分类与重试装饰器
"""

import asyncio
import time
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from estatehub.core.logger import get_logger


def retry(max_attempts: int = 3, delay: float = 1.0,
          backoff_factor: float = 2.0,
          exceptions: tuple = (Exception,)):
    """
    重试装饰器

    Args:
        max_attempts: 最大尝试次数
        delay: 初始延迟时间（秒）
        backoff_factor: 退避因子
        exceptions: 需要重试的异常类型
    """
    max_attempts = max(1, int(max_attempts))

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = get_logger()

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts - 1:
                        if max_attempts > 1:
                            logger.error(f"Final attempt failed for {func.__name__}: {e}")
                        raise

                    wait_time = delay * (backoff_factor ** attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed for {func.__name__}: {e}. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            logger = get_logger()

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts - 1:
                        if max_attempts > 1:
                            logger.error(f"Final attempt failed for {func.__name__}: {e}")
                        raise

                    wait_time = delay * (backoff_factor ** attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed for {func.__name__}: {e}. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    time.sleep(wait_time)

        return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper
    return decorator


class EstateError(Exception):
    """基础异常类"""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ConfigError(EstateError):
    """配置错误"""
    pass


class UnauthorizedError(EstateError):
    """缺少已认证的调用方身份"""
    status_code = 401


class NotFoundError(EstateError):
    """资源不存在"""
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource.capitalize()} not found",
            {"resource": resource, "id": resource_id},
        )


class ForbiddenError(EstateError):
    """资源存在但调用方不是所有者"""
    status_code = 403


class ValidationError(EstateError):
    """字段级校验失败，携带字段名与规则名"""
    status_code = 400

    def __init__(self, field: str, rule: str, message: Optional[str] = None):
        self.field = field
        self.rule = rule
        super().__init__(
            message or f"Invalid value for '{field}' ({rule})",
            {"field": field, "rule": rule},
        )


class CapacityExceededError(EstateError):
    """图集容量超限"""
    status_code = 400

    def __init__(self, requested: int, remaining: int, limit: int):
        self.requested = requested
        self.remaining = remaining
        self.limit = limit
        super().__init__(
            f"Cannot attach {requested} image(s): only {remaining} of {limit} slots remaining",
            {"requested": requested, "remaining": remaining, "limit": limit},
        )


class AssetStoreError(EstateError):
    """远端资源存储拒绝了请求"""
    status_code = 502


class UpstreamUnavailableError(AssetStoreError):
    """远端资源存储不可达（网络错误、超时、5xx）"""
    status_code = 503


class PartialFailureError(EstateError):
    """
    批量上传部分失败

    uploaded 为成功上传的资源句柄，failures 为逐个文件的失败明细，
    调用方可只重试失败的文件。details 只包含句柄的对外字段，删除凭据不外泄
    """
    status_code = 207

    def __init__(self, uploaded: List[Any], failures: List[Dict[str, Any]],
                 record: Optional[Dict[str, Any]] = None):
        self.uploaded = list(uploaded)
        self.failures = list(failures)
        self.record = record
        details: Dict[str, Any] = {
            "uploaded": [h.to_public_dict() if hasattr(h, "to_public_dict") else h for h in self.uploaded],
            "failures": self.failures,
        }
        if record is not None:
            details["record"] = record
        super().__init__(
            f"{len(self.failures)} of {len(self.uploaded) + len(self.failures)} upload(s) failed",
            details,
        )

    @property
    def failed_files(self) -> List[str]:
        return [f["filename"] for f in self.failures]


class ConflictError(EstateError):
    """版本号不匹配（陈旧写入）"""
    status_code = 409
