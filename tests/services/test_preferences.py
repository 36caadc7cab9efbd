"""Tests for the preference providers."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.voice_translator.models.pipeline import Preferences, ResponseMode
from src.voice_translator.services.preferences import (
    RedisPreferenceProvider,
    StaticPreferenceProvider,
)

DEFAULTS = Preferences(target_languages=["en"], response_mode="text")


def make_provider(client):
    return RedisPreferenceProvider("redis://localhost:6379", defaults=DEFAULTS, ttl=60, client=client)


class TestRedisPreferenceProvider:
    @pytest.mark.asyncio
    async def test_reads_stored_hash(self):
        client = AsyncMock()
        client.hgetall.return_value = {
            "source_language": "es",
            "target_languages": "en,fr",
            "response_mode": "both",
        }
        provider = make_provider(client)

        prefs = await provider.get_preferences("42")

        client.hgetall.assert_called_once_with("user:42:preferences")
        assert prefs.source_language == "es"
        assert prefs.target_languages == ["en", "fr"]
        assert prefs.response_mode == ResponseMode.both

    @pytest.mark.asyncio
    async def test_missing_user_gets_defaults(self):
        client = AsyncMock()
        client.hgetall.return_value = {}
        prefs = await make_provider(client).get_preferences("nobody")
        assert prefs == DEFAULTS

    @pytest.mark.asyncio
    async def test_redis_outage_gets_defaults(self):
        client = AsyncMock()
        client.hgetall.side_effect = RedisConnectionError("down")
        prefs = await make_provider(client).get_preferences("42")
        assert prefs == DEFAULTS

    @pytest.mark.asyncio
    async def test_invalid_stored_mode_gets_defaults(self):
        client = AsyncMock()
        client.hgetall.return_value = {"response_mode": "hologram"}
        prefs = await make_provider(client).get_preferences("42")
        assert prefs == DEFAULTS

    @pytest.mark.asyncio
    async def test_set_writes_hash_with_ttl(self):
        client = AsyncMock()
        provider = make_provider(client)

        ok = await provider.set_preferences(
            "42", Preferences(source_language="de", target_languages=["es", "it"], response_mode="audio")
        )

        assert ok is True
        client.hset.assert_called_once_with(
            "user:42:preferences",
            mapping={"source_language": "de", "target_languages": "es,it", "response_mode": "audio"},
        )
        client.expire.assert_called_once_with("user:42:preferences", 60)

    @pytest.mark.asyncio
    async def test_set_failure_returns_false(self):
        client = AsyncMock()
        client.hset.side_effect = RedisConnectionError("down")
        assert await make_provider(client).set_preferences("42", DEFAULTS) is False

    @pytest.mark.asyncio
    async def test_ping(self):
        client = AsyncMock()
        client.ping.return_value = True
        assert await make_provider(client).ping() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert await make_provider(client).ping() is False


class TestStaticPreferenceProvider:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        provider = StaticPreferenceProvider(DEFAULTS)
        assert await provider.get_preferences("u1") == DEFAULTS

        stored = Preferences(target_languages=["fr"])
        assert await provider.set_preferences("u1", stored) is True
        assert await provider.get_preferences("u1") == stored
        assert await provider.get_preferences("u2") == DEFAULTS
