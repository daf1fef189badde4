"""
资源接口模块
Resource API Module
"""

from .cache import ResourceCache
from .resources import ResourceAPI

__all__ = ["ResourceAPI", "ResourceCache"]
