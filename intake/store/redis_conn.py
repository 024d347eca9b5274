from typing import Dict

from redis.asyncio import Redis
from intake.settings import settings

_clients: Dict[bool, Redis] = {}


def get_redis(decode_responses: bool = True) -> Redis:
    # Statement bytes need a raw client; everything else is text
    key = bool(decode_responses)
    if key not in _clients:
        _clients[key] = Redis.from_url(settings.REDIS_URL, decode_responses=key)
    return _clients[key]


async def close_redis() -> None:
    for client in list(_clients.values()):
        await client.aclose()
    _clients.clear()
