import json
import logging
from typing import List

import redis
from redis.exceptions import RedisError

from app.domain.schemas import CartLine
from app.interfaces.ICartStore import ICartStore

logger = logging.getLogger(__name__)

class CartStore(ICartStore):
    """Per-customer cart sessions in Redis, with an in-process fallback."""

    def __init__(self, redis_url: str | None = None, ttl: int = 86400):
        self.ttl = ttl
        self.redis = None
        self.redis_available = False

        # 1. Primary memory (Redis)
        if redis_url:
            try:
                self.redis = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=1  # fail fast if Redis is down
                )
                self.redis.ping()
                self.redis_available = True
                logger.info("✅ CartStore: Connected to Redis.")
            except RedisError as e:
                logger.warning(f"⚠️ CartStore: Redis unreachable ({e}). Using RAM fallback.")
        else:
            logger.info("CartStore: no REDIS_URL configured, carts live in RAM.")

        # 2. Fallback memory (RAM)
        self._memory_store: dict[str, list] = {}

    @staticmethod
    def _key(customer_id: str) -> str:
        return f"cart:{customer_id}:lines"

    def load(self, customer_id: str) -> List[CartLine]:
        key = self._key(customer_id)
        raw = None

        if self.redis_available:
            try:
                data = self.redis.get(key)
                if data:
                    raw = json.loads(data)
            except RedisError as e:
                self._handle_redis_error(e)

        if raw is None:
            raw = self._memory_store.get(key, [])
        return [CartLine.model_validate(line) for line in raw]

    def save(self, customer_id: str, lines: List[CartLine]) -> None:
        key = self._key(customer_id)
        raw = [line.model_dump(mode="json") for line in lines]

        if self.redis_available:
            try:
                self.redis.setex(key, self.ttl, json.dumps(raw))
            except RedisError as e:
                self._handle_redis_error(e)

        # Always write to RAM so a Redis outage does not lose the cart
        self._memory_store[key] = raw

    def clear(self, customer_id: str) -> None:
        key = self._key(customer_id)
        if self.redis_available:
            try:
                self.redis.delete(key)
            except RedisError as e:
                self._handle_redis_error(e)
        self._memory_store.pop(key, None)

    def _handle_redis_error(self, e):
        """Stop trying Redis after the first failure."""
        logger.error(f"❌ Redis Error: {e}. Switching to RAM mode.")
        self.redis_available = False
