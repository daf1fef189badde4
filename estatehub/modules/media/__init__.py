"""
图片资源协调模块
Media Coordination Module
"""

from .coordinator import MediaAssetCoordinator
from .orphans import OrphanLedger
from .staging import UploadStaging

__all__ = ["MediaAssetCoordinator", "OrphanLedger", "UploadStaging"]
