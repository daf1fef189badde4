"""
核心模块
Core Module

提供配置管理、日志系统、错误分类与文档存储等基础能力
"""

from .config import Config
from .logger import Logger
from .store import DocumentStore

__all__ = ["Config", "DocumentStore", "Logger"]
