"""
配置模型与验证
Configuration Models and Validation

使用Pydantic进行配置验证
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator


class AppConfig(BaseModel):
    """应用配置模型"""
    name: str = Field(default="estatehub", description="应用名称")
    version: str = Field(default="1.0.0", description="版本号")
    debug: bool = Field(default=False, description="调试模式")
    log_level: str = Field(default="INFO", description="日志级别")
    data_dir: str = Field(default="data", description="数据目录")
    logs_dir: str = Field(default="logs", description="日志目录")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """验证日志级别"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {v}")
        return v


class DatabaseConfig(BaseModel):
    """文档存储配置模型"""
    path: str = Field(default="data/estatehub.db", description="SQLite文件路径")
    timeout: int = Field(default=30, ge=1, le=300, description="数据库操作超时时间（秒）")


class AssetStoreConfig(BaseModel):
    """远端图片存储配置模型"""
    base_url: str = Field(default="https://api.cloudinary.com/v1_1", description="API基础URL")
    cloud_name: str = Field(default="", description="云空间名称")
    upload_preset: str = Field(default="", description="无签名上传预设")
    api_key: Optional[str] = Field(default=None, description="API密钥")
    api_secret: Optional[str] = Field(default=None, description="API签名密钥")
    timeout: float = Field(default=30.0, gt=0, le=300, description="单次请求超时（秒）")
    retry_times: int = Field(default=2, ge=1, le=10, description="传输层最大尝试次数")
    retry_delay: float = Field(default=0.5, ge=0, le=30, description="重试初始延迟（秒）")


class MediaConfig(BaseModel):
    """图集与上传配置模型"""
    max_gallery_size: int = Field(default=7, ge=1, le=50, description="单个房源最多图片数")
    min_gallery_size: int = Field(default=1, ge=0, le=50, description="单个房源最少图片数")
    max_image_size: int = Field(default=5242880, ge=1024, le=20971520, description="最大图片大小（字节）")
    supported_formats: List[str] = Field(
        default=["jpg", "jpeg", "png", "webp"],
        description="支持的图片格式"
    )
    upload_concurrency: int = Field(default=4, ge=1, le=32, description="并发上传数")
    staging_ttl: int = Field(default=86400, ge=0, description="草稿图片最长暂存时间（秒），超时由清理任务删除")

    @field_validator("min_gallery_size")
    @classmethod
    def validate_min_gallery(cls, v, info):
        max_size = info.data.get("max_gallery_size")
        if max_size is not None and v > max_size:
            raise ValueError("min_gallery_size must not exceed max_gallery_size")
        return v


class SecurityConfig(BaseModel):
    """安全配置模型"""
    bcrypt_rounds: int = Field(default=12, ge=4, le=16, description="bcrypt成本因子")


class ConfigModel(BaseModel):
    """完整配置模型"""
    app: AppConfig = Field(default_factory=AppConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    asset_store: AssetStoreConfig = Field(default_factory=AssetStoreConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigModel':
        """从字典创建配置"""
        return cls(**data)
