# medislot/redis_client.py

from redis import Redis


def make_redis(redis_url: str | None) -> Redis | None:
    """Redis client, or None when REDIS_URL is not configured."""
    if not redis_url:
        return None
    return Redis.from_url(redis_url, decode_responses=True)
