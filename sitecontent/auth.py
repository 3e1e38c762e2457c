"""
Authentication gate for admin writes.

Password verification reads the stored SHA-256 hash from the admin document.
Sessions are opaque 256-bit tokens presented as ``Authorization: Bearer <token>``.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Any, Mapping, Optional

from sitecontent.config import Settings
from sitecontent.documents import ContentKeys, DocumentStore
from sitecontent.errors import AuthInvalid, AuthRequired, PasswordPolicyError
from sitecontent.sessions import SessionStore

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

# A raw Authorization header value, or anything with a ``headers`` mapping
# such as a Starlette request.
RequestLike = Any


def generate_session_token() -> str:
    return secrets.token_hex(32)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _authorization_header(request: RequestLike) -> Optional[str]:
    if request is None or isinstance(request, str):
        return request
    headers = getattr(request, "headers", None)
    if headers is None and isinstance(request, Mapping):
        headers = request
    if headers is None:
        return None
    value = headers.get("authorization")
    if value is None:
        value = headers.get("Authorization")
    return value


def extract_token(request: RequestLike) -> Optional[str]:
    """Return the bearer token, or None when the header is absent or malformed."""
    header = _authorization_header(request)
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):]
    return token or None


class AuthGate:
    def __init__(
        self, documents: DocumentStore, sessions: SessionStore, settings: Settings
    ):
        self.documents = documents
        self.sessions = sessions
        self.settings = settings

    async def verify_auth(self, request: RequestLike) -> bool:
        token = extract_token(request)
        if not token:
            return False
        return await self.sessions.validate(token)

    async def require_auth(self, request: RequestLike) -> str:
        """Return the session token, raising AuthRequired if it is not valid."""
        token = extract_token(request)
        if not token or not await self.sessions.validate(token):
            raise AuthRequired()
        return token

    async def get_password_hash(self) -> str:
        """
        Stored hash, or the default when no admin document was ever written.

        A stored document that cannot be fetched raises instead, so an outage
        never re-enables the default password.
        """
        config = await self.documents.read(ContentKeys.ADMIN, {}, strict=True)
        if isinstance(config, dict) and config.get("passwordHash"):
            return config["passwordHash"]
        return self.settings.default_password_hash

    async def verify_password(self, candidate: str) -> bool:
        # Exact match against the stored unsalted SHA-256 hex digest.
        stored_hash = await self.get_password_hash()
        return hash_password(candidate) == stored_hash

    async def change_password(self, current: str, new: str) -> None:
        """
        Replace the admin password.

        Raises:
            PasswordPolicyError: If ``new`` is shorter than the minimum length
            AuthInvalid: If ``current`` does not verify
        """
        if len(new) < self.settings.min_password_length:
            raise PasswordPolicyError(self.settings.min_password_length)
        if not await self.verify_password(current):
            raise AuthInvalid("Current password is incorrect")

        def set_hash(config):
            if not isinstance(config, dict):
                config = {}
            config["passwordHash"] = hash_password(new)
            return config

        await self.documents.update(ContentKeys.ADMIN, {}, set_hash)
        logger.info("Admin password changed")

    async def login(self, password: str) -> str:
        """Verify ``password`` and open a new session, returning its token."""
        if not await self.verify_password(password):
            raise AuthInvalid()
        token = generate_session_token()
        await self.sessions.create(token)
        return token

    async def logout(self, request: RequestLike) -> None:
        token = extract_token(request)
        if token:
            await self.sessions.delete(token)
