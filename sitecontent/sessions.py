"""
Admin sessions keyed by opaque bearer tokens.

A token is either absent or active. It becomes active on ``create`` and
absent again on ``delete`` or when the backend expires it. There is no renewal.
"""

from __future__ import annotations

import logging
import time

from sitecontent.config import Settings
from sitecontent.kv import KeyValueBackend

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, kv: KeyValueBackend, settings: Settings):
        self.kv = kv
        self.settings = settings

    def _key(self, token: str) -> str:
        return f"{self.settings.session_prefix}{token}"

    async def create(self, token: str) -> None:
        """Store the session with a fixed TTL. The caller supplies a random token."""
        await self.kv.set(
            self._key(token),
            {"createdAt": int(time.time() * 1000)},
            self.settings.session_ttl_seconds,
        )
        logger.info("Created admin session (ttl=%ss)", self.settings.session_ttl_seconds)

    async def validate(self, token: str) -> bool:
        if not token:
            return False
        return await self.kv.get(self._key(token)) is not None

    async def delete(self, token: str) -> None:
        await self.kv.delete(self._key(token))
