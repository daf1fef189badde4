"""
日志模块
Logging Module

封装loguru：控制台输出到 stderr（CLI 的 stdout 只输出 JSON），
文件日志按大小滚动并压缩，可通过环境变量关闭
"""

import os
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional
from loguru import logger

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class Logger:
    """
    日志管理类

    进程内单例，首次实例化时配置loguru的输出目标。

    环境变量：
    - ESTATE_LOG_LEVEL: 控制台日志级别，默认 INFO
    - ESTATE_DEBUG: 为 true 时控制台输出 DEBUG
    - ESTATE_LOG_FILE: 为 false 时不写文件日志
    - ESTATE_LOGS_DIR: 文件日志目录，默认 logs
    """

    _instance: Optional["Logger"] = None
    _lock = threading.Lock()
    _initialized: bool = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not hasattr(self, '_initialized') or not self._initialized:
            self._setup_logger()
            Logger._initialized = True

    def _setup_logger(self) -> None:
        debug = _env_flag("ESTATE_DEBUG", False)
        console_level = "DEBUG" if debug else os.getenv("ESTATE_LOG_LEVEL", "INFO").upper()

        logger.remove()
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{message}</cyan>"
            ),
            level=console_level,
            colorize=True,
        )

        self.log_file: Optional[Path] = None
        if _env_flag("ESTATE_LOG_FILE", True):
            logs_dir = Path(os.getenv("ESTATE_LOGS_DIR", "logs"))
            logs_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = logs_dir / f"estatehub_{datetime.now():%Y%m%d_%H%M%S}.log"
            logger.add(
                str(self.log_file),
                format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}",
                level="DEBUG",
                rotation="10 MB",
                retention="7 days",
                compression="gz",
            )

    def info(self, message: str, **kwargs) -> None:
        logger.info(message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        logger.debug(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Error级别日志，附带当前异常的堆栈"""
        logger.opt(exception=True, depth=1).error(message, **kwargs)

    def success(self, message: str, **kwargs) -> None:
        logger.success(message, **kwargs)


def get_logger(*_args, **_kwargs) -> Logger:
    """
    获取日志单例

    Returns:
        Logger实例
    """
    return Logger()
