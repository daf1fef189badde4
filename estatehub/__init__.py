"""
房产资源中心
EstateHub

房源与用户资源的生命周期核心：权限校验、图集编排与远端图片清理
"""

__version__ = "1.0.0"
__author__ = "Project Team"

from .core.config import Config
from .core.logger import Logger
from .core.store import DocumentStore

__all__ = [
    "Config",
    "DocumentStore",
    "Logger",
    "__version__",
]
