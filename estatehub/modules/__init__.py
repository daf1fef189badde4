"""
功能模块
Modules

提供房源、用户、图片资源与权限等领域服务
"""

from .api.resources import ResourceAPI
from .listings.models import Listing
from .listings.service import ListingLifecycleService
from .media.coordinator import MediaAssetCoordinator
from .users.models import User
from .users.service import ProfileLifecycleService

__all__ = [
    "Listing",
    "ListingLifecycleService",
    "MediaAssetCoordinator",
    "ProfileLifecycleService",
    "ResourceAPI",
    "User",
]
