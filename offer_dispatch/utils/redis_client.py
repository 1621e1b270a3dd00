"""
Redis 客户端（REDIS_URL 为空时为 None，限流随之关闭）
"""
from typing import Optional

import redis.asyncio as redis
from offer_dispatch.config import get_settings

settings = get_settings()

redis_client: Optional[redis.Redis] = (
    redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    if settings.redis_url
    else None
)

