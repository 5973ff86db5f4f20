"""
模型通用工具

系统内部统一使用不带时区的本地时间（与数据库 DateTime 列一致），
外部传入的带时区时间在模型边界转换为本地时间。
"""

from datetime import datetime
from typing import Optional


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间转换为本地时间并去掉时区信息"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def resolve_now(current_time: Optional[datetime] = None) -> datetime:
    """未指定时使用当前本地时间"""
    return to_local_naive(current_time) or datetime.now()
