"""
用户模块
User Module
"""

from .models import User
from .repository import UserRepository
from .service import ProfileLifecycleService

__all__ = ["ProfileLifecycleService", "User", "UserRepository"]
