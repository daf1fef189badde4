"""
房源模块
Listing Module

提供房源记录的校验、持久化与生命周期管理
"""

from .models import Listing, TransactionType
from .repository import ListingRepository
from .service import ListingLifecycleService

__all__ = ["Listing", "ListingLifecycleService", "ListingRepository", "TransactionType"]
