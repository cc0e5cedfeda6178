from typing import List, Union
import logging

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    PROJECT_NAME: str = "Textile Manager"
    API_PREFIX: str = "/api"

    # CORS配置
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # 服务配置
    SERVER_HOST: str = "127.0.0.1"  # 默认只监听本地
    SERVER_PORT: int = 8000
    SERVER_RELOAD: bool = False

    # 数据库配置
    SQLITE_DATABASE_URI: str = "sqlite:///./textile_manager.db"
    SQL_ECHO: bool = False  # 打印SQL，仅调试用

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_RETENTION_DAYS: int = 30  # 日志文件保留天数

    # 自动备份配置
    AUTO_BACKUP_ENABLED: bool = True  # 是否启用自动备份
    AUTO_BACKUP_HOUR: int = 3  # 每天备份时间（小时，0-23）
    AUTO_BACKUP_MINUTE: int = 0  # 每天备份时间（分钟，0-59）
    AUTO_BACKUP_KEEP_COUNT: int = 7  # 保留最近多少个自动备份

    # 业务默认值
    THREAD_MARKUP: float = 1.2  # 纱线默认售价倍率
    FABRIC_MARKUP: float = 1.4  # 布料默认售价倍率
    DEFAULT_MIN_STOCK_LEVEL: int = 100
    SALE_TOTAL_TOLERANCE: float = 5.0  # 销售总额允许的误差

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
logger.info(f"加载配置: API_PREFIX={settings.API_PREFIX}, CORS={settings.BACKEND_CORS_ORIGINS}")
