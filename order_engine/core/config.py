from pydantic_settings import BaseSettings
from typing import Optional, Dict
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "Order Pricing & Fulfillment Engine"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "order_engine_db"
    db_user: str = "order_engine_user"
    db_password: str = "order_engine_password"

    # Redis配置 (缓存 + 变更事件)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    event_channel: str = "order_engine:events"

    # 运费配置 (固定费用, 按配送方式从慢到快)
    shipping_fee_standard: int = 25000
    shipping_fee_regular: int = 35000
    shipping_fee_express: int = 50000

    # 每单固定税费
    flat_tax_amount: int = 2000

    # 优惠券代码生成
    coupon_code_length: int = 8
    coupon_code_max_attempts: int = 10

    # 缓存过期时间(秒)
    order_cache_ttl: int = 1800
    coupon_cache_ttl: int = 600

    # 日志配置
    log_level: str = "INFO"

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def shipping_fees(self) -> Dict[str, int]:
        """配送方式 -> 运费"""
        return {
            "standard": self.shipping_fee_standard,
            "regular": self.shipping_fee_regular,
            "express": self.shipping_fee_express,
        }

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局配置实例
settings = Settings()
