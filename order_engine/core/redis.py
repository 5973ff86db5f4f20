import redis.asyncio as aioredis
import json
from typing import Any, Dict, Optional
from order_engine.core.config import settings
import structlog

"redis连接管理器以及变更事件发布"

logger = structlog.get_logger()


class RedisManager:
    """Redis连接管理器"""

    def __init__(self):
        self.redis_pool: Optional[aioredis.Redis] = None

    async def init_redis(self) -> None:
        """初始化Redis连接池"""
        try:
            self.redis_pool = aioredis.from_url(
                settings.redis_url_computed,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
                retry_on_timeout=True
            )
            # 测试连接
            await self.redis_pool.ping()
            logger.info("Redis连接初始化成功")
        except Exception as e:
            logger.error("Redis连接初始化失败", error=str(e))
            raise

    async def close_redis(self) -> None:
        """关闭Redis连接"""
        if self.redis_pool:
            await self.redis_pool.close()
            logger.info("Redis连接已关闭")

    async def ping(self) -> bool:
        """检查连接是否可用"""
        if not self.redis_pool:
            return False
        try:
            return bool(await self.redis_pool.ping())
        except Exception as e:
            logger.error("Redis ping失败", error=str(e))
            return False


class EventPublisher:
    """状态变更事件发布器

    订单状态、优惠券、限时折扣的变化推送到同一个频道，
    客户端订阅即可，不需要定时轮询。
    """

    def __init__(self, redis_manager: RedisManager, channel: str):
        self.redis = redis_manager
        self.channel = channel

    async def publish(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """发布事件；Redis不可用时只记录日志"""
        if not self.redis.redis_pool:
            logger.debug("Redis未连接，跳过事件发布", event_type=event_type)
            return False

        message = json.dumps(
            {"event": event_type, "data": payload},
            default=str,
            ensure_ascii=False
        )
        try:
            await self.redis.redis_pool.publish(self.channel, message)
            return True
        except Exception as e:
            logger.error("事件发布失败", event_type=event_type, error=str(e))
            return False


# 全局Redis管理器实例
redis_manager = RedisManager()

# 全局事件发布器
event_publisher = EventPublisher(redis_manager, settings.event_channel)


def get_redis_client():
    """获取Redis客户端实例"""
    return redis_manager.redis_pool
