"""
远端图片存储模块
Asset Store Module
"""

from .client import AssetStoreClient
from .models import AssetHandle, UploadPayload

__all__ = ["AssetHandle", "AssetStoreClient", "UploadPayload"]
