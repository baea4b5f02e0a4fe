import os

import redis

cache_db = redis.Redis.from_url(
    os.getenv("REDIS_URL")
    or f"redis://{os.getenv('REDIS_HOST', '127.0.0.1')}:{os.getenv('REDIS_PORT', '6379')}/0",
    socket_connect_timeout=2,
    decode_responses=True,
)
