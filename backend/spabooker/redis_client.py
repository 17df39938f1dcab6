# backend/spabooker/redis_client.py

from redis import Redis

from .config import settings

# Connection is lazy: nothing touches the network until the first command
redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
