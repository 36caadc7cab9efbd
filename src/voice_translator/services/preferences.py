"""User preference providers: Redis-backed, and a static fallback."""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from src.voice_translator.models.pipeline import Preferences

logger = structlog.get_logger()


class RedisPreferenceProvider:
    """Reads per-user defaults from the hash ``user:<id>:preferences``.

    Missing users and Redis outages both yield the configured defaults, so a
    cache problem never blocks a translation.
    """

    def __init__(
        self,
        redis_url: str,
        defaults: Preferences | None = None,
        ttl: int = 86400 * 7,
        client: aioredis.Redis | None = None,
    ) -> None:
        self.defaults = defaults or Preferences()
        self.ttl = ttl
        self.redis_client = client or aioredis.from_url(redis_url, decode_responses=True)

    @staticmethod
    def key(user_id: str) -> str:
        return f"user:{user_id}:preferences"

    async def get_preferences(self, user_id: str) -> Preferences:
        try:
            stored = await self.redis_client.hgetall(self.key(user_id))
        except RedisError as e:
            logger.warning("Preference read error, using defaults", user_id=user_id, error=str(e))
            return self.defaults

        if not stored:
            return self.defaults
        try:
            return Preferences(
                source_language=stored.get("source_language", self.defaults.source_language),
                target_languages=stored.get("target_languages") or self.defaults.target_languages,
                response_mode=stored.get("response_mode", self.defaults.response_mode),
            )
        except ValueError as e:
            logger.warning("Stored preferences invalid, using defaults", user_id=user_id, error=str(e))
            return self.defaults

    async def set_preferences(self, user_id: str, preferences: Preferences) -> bool:
        key = self.key(user_id)
        try:
            await self.redis_client.hset(
                key,
                mapping={
                    "source_language": preferences.source_language,
                    "target_languages": ",".join(preferences.target_languages),
                    "response_mode": preferences.response_mode.value,
                },
            )
            await self.redis_client.expire(key, self.ttl)
        except RedisError as e:
            logger.warning("Preference write error", user_id=user_id, error=str(e))
            return False
        logger.info("Preferences stored", user_id=user_id)
        return True

    async def ping(self) -> bool:
        try:
            return bool(await self.redis_client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.redis_client.aclose()


class StaticPreferenceProvider:
    """In-process preferences, used when Redis is disabled."""

    def __init__(self, defaults: Preferences | None = None) -> None:
        self.defaults = defaults or Preferences()
        self._stored: dict[str, Preferences] = {}

    async def get_preferences(self, user_id: str) -> Preferences:
        return self._stored.get(user_id, self.defaults)

    async def set_preferences(self, user_id: str, preferences: Preferences) -> bool:
        self._stored[user_id] = preferences
        return True
