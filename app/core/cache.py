import redis

from app.core.config import settings


def create_redis_client() -> redis.Redis:
    # Synchronous client; session payloads are small JSON blobs
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)
