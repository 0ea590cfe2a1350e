"""Redis client factory for the incident and history stores.

Standalone Redis serves development and single-node deployments; Sentinel
mode resolves the current master from a set of sentinels. Either way the
client is pinged (with startup retries) before it is handed to the stores.
"""

import logging
from typing import Optional

from redis.asyncio import Redis
from redis.asyncio.sentinel import Sentinel

from triage_lib.config.settings import RedisSettings, get_settings
from triage_lib.utils import service_startup_retry

logger = logging.getLogger(__name__)


@service_startup_retry
async def _verify_redis_connection(client: Redis) -> None:
    await client.ping()


def _sentinel_master(settings: RedisSettings, password: Optional[str]) -> Redis:
    sentinel = Sentinel(
        settings.sentinel_hosts,
        sentinel_kwargs={"password": password} if password else {},
    )
    return sentinel.master_for(
        settings.master_set,
        db=settings.db,
        password=password,
        decode_responses=True,
        health_check_interval=settings.health_check_interval,
    )


async def get_redis_client(settings: Optional[RedisSettings] = None) -> Redis:
    """Connect to Redis as described by settings (defaults to the REDIS_* environment).

    Raises:
        redis.exceptions.ConnectionError: If the ping still fails after retries
    """
    settings = settings or get_settings().redis
    password = settings.password.get_secret_value() if settings.password else None

    if settings.mode == "sentinel":
        client = _sentinel_master(settings, password)
        target = f"sentinel master {settings.master_set}"
    else:
        client = Redis(
            host=settings.host,
            port=settings.port,
            db=settings.db,
            password=password,
            decode_responses=True,
            health_check_interval=settings.health_check_interval,
            socket_connect_timeout=5,
        )
        target = f"{settings.host}:{settings.port}"

    await _verify_redis_connection(client)
    logger.info(f"Redis connected ({settings.mode}): {target}/{settings.db}")
    return client
