import json
import unittest
from unittest.mock import AsyncMock, patch

from redis import exceptions as redis_exceptions

from sitecontent.config import Settings
from sitecontent.errors import BackendUnavailable
from sitecontent.kv import InMemoryKeyValueBackend, RedisKeyValueBackend
from sitecontent.sessions import SessionStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SessionStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.kv = InMemoryKeyValueBackend(clock=self.clock)
        self.settings = Settings(_env_file=None, session_ttl_seconds=60)
        self.sessions = SessionStore(self.kv, self.settings)

    async def test_lifecycle(self):
        token = "a" * 64
        self.assertFalse(await self.sessions.validate(token))
        await self.sessions.create(token)
        self.assertTrue(await self.sessions.validate(token))
        await self.sessions.delete(token)
        self.assertFalse(await self.sessions.validate(token))

    async def test_expires_after_ttl(self):
        await self.sessions.create("tok")
        self.clock.advance(59)
        self.assertTrue(await self.sessions.validate("tok"))
        self.clock.advance(1)
        self.assertFalse(await self.sessions.validate("tok"))

    async def test_delete_is_idempotent(self):
        await self.sessions.delete("never-created")
        await self.sessions.create("tok")
        await self.sessions.delete("tok")
        await self.sessions.delete("tok")
        self.assertFalse(await self.sessions.validate("tok"))

    async def test_stores_created_at_under_prefix(self):
        await self.sessions.create("tok")
        value, expires_at = self.kv.items["session:tok"]
        self.assertIn("createdAt", value)
        self.assertEqual(expires_at, self.clock.now + 60)

    async def test_empty_token_is_invalid(self):
        self.assertFalse(await self.sessions.validate(""))

    def test_default_ttl_is_one_day(self):
        self.assertEqual(Settings(_env_file=None).session_ttl_seconds, 86400)


class RedisKeyValueBackendTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        patcher = patch("sitecontent.kv.redis.Redis.from_url")
        self.client = AsyncMock()
        patcher.start().return_value = self.client
        self.addCleanup(patcher.stop)
        self.kv = RedisKeyValueBackend(url="redis://localhost:6379/0")

    async def test_set_uses_native_expiry(self):
        await self.kv.set("session:tok", {"createdAt": 1}, 86400)
        self.client.set.assert_awaited_once_with(
            "session:tok", json.dumps({"createdAt": 1}), ex=86400
        )

    async def test_get_decodes_json(self):
        self.client.get.return_value = b'{"createdAt": 5}'
        self.assertEqual(await self.kv.get("session:tok"), {"createdAt": 5})
        self.client.get.return_value = None
        self.assertIsNone(await self.kv.get("session:tok"))

    async def test_connection_errors_are_unavailable(self):
        self.client.delete.side_effect = redis_exceptions.ConnectionError("reset")
        with self.assertRaises(BackendUnavailable):
            await self.kv.delete("session:tok")


if __name__ == "__main__":
    unittest.main()
