"""
应用配置
从环境变量读取配置（支持 .env 文件）
"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Library Seat Booking"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./seat_booking.db"

    # JWT 配置（令牌由外部身份服务签发，这里只校验并解析）
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 座位分配并发控制
    ALLOCATION_LOCK_TIMEOUT: float = 5.0     # 获取座位锁的最长等待秒数
    ALLOCATION_MAX_ATTEMPTS: int = 3         # 唯一约束冲突后重新校验的次数上限

    # 通知开关（状态变更通知为 fire-and-forget）
    NOTIFICATIONS_ENABLED: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
