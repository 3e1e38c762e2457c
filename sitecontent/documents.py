"""
JSON document store on top of an append-only, eventually-consistent blob backend.

A document key such as ``content/blog.json`` owns every backend object whose
pathname is the key itself or the key with a 30-character random suffix
before the extension. Any other hyphenated tail belongs to a different key.
The newest of those objects is the document.

Writes create the new version first and only then reap older versions, so a
key that has ever been written always has at least one object to read.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sitecontent.blobs import SUFFIX_LENGTH, BlobBackend, BlobObject
from sitecontent.errors import BackendError, BackendUnavailable, DocumentCorrupted

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class ContentKeys:
    BLOG = "content/blog.json"
    PORTFOLIO = "content/portfolio.json"
    ADMIN = "content/admin.json"
    VISITORS = "content/visitors.json"
    COMMENTS_META = "content/comments-meta.json"
    BANNED_IPS = "content/banned-ips.json"


def comments_key(post_slug: str) -> str:
    return f"content/comments-{post_slug}.json"


def _key_pattern(key: str) -> re.Pattern:
    stem, ext = posixpath.splitext(key)
    suffix = rf"-[A-Za-z0-9]{{{SUFFIX_LENGTH}}}"
    return re.compile(rf"^{re.escape(stem)}(?:{suffix})?{re.escape(ext)}$")


def version_order(blob: BlobObject) -> tuple:
    """Total order on versions: upload time, then URL."""
    return (blob.uploaded_at, blob.url)


def latest_version(blobs: list[BlobObject]) -> Optional[BlobObject]:
    """Newest object by upload time; ties go to the greater URL."""
    if not blobs:
        return None
    return max(blobs, key=version_order)


@dataclass
class WriteOperation:
    """
    One write of one document, split into its two phases.

    ``publish`` uploads the new version and is the only phase whose failure
    fails the write. ``reap`` deletes every version under the key that orders
    before the one just published. Versions from overlapping writers that
    order after it are left alone, so the newest version always survives.
    Reap failures are logged and left for the next write to clean up.
    """

    store: "DocumentStore"
    key: str
    body: bytes
    created: Optional[BlobObject] = None
    reaped: list[str] = field(default_factory=list)

    async def publish(self) -> BlobObject:
        self.created = await self.store.backend.put(
            self.key, self.body, content_type=JSON_CONTENT_TYPE, access="public"
        )
        logger.info("Wrote blob: %s -> %s", self.key, self.created.url)
        return self.created

    async def reap(self) -> list[str]:
        if self.created is None:
            raise RuntimeError("reap() called before publish() succeeded")
        try:
            versions = await self.store.versions(self.key)
        except (BackendUnavailable, BackendError) as e:
            logger.warning("Cleanup listing failed for %s: %s", self.key, e)
            return self.reaped

        # The listing carries the backend's own timestamp for our object.
        mine = next((b for b in versions if b.url == self.created.url), self.created)
        cutoff = version_order(mine)
        for blob in versions:
            if version_order(blob) >= cutoff:
                continue
            try:
                await self.store.backend.delete(blob.url)
            except (BackendUnavailable, BackendError) as e:
                logger.warning("Failed to delete stale blob %s: %s", blob.url, e)
                continue
            self.reaped.append(blob.url)
        if self.reaped:
            logger.debug("Reaped %d stale blob(s) for %s", len(self.reaped), self.key)
        return self.reaped

    async def run(self) -> BlobObject:
        created = await self.publish()
        await self.reap()
        return created


class DocumentStore:
    """Maps document keys to JSON values."""

    def __init__(self, backend: BlobBackend):
        self.backend = backend

    async def versions(self, key: str) -> list[BlobObject]:
        """Every backend object currently listed for ``key``."""
        stem, _ = posixpath.splitext(key)
        pattern = _key_pattern(key)
        blobs = await self.backend.list(stem)
        matching = [blob for blob in blobs if pattern.match(blob.pathname)]
        logger.debug("Blob list for %s: %s", key, [b.pathname for b in matching])
        return matching

    async def read(self, key: str, default: Any = None, *, strict: bool = False) -> Any:
        """
        Return the latest stored value for ``key``.

        Returns ``default`` when nothing was ever written. When the newest
        object cannot be fetched, returns ``default`` too, unless ``strict``
        is set, in which case the fetch error propagates. Listing failures
        always propagate.

        Raises:
            DocumentCorrupted: If the stored bytes are not valid JSON
        """
        latest = latest_version(await self.versions(key))
        if latest is None:
            logger.info("No blobs found for key: %s, returning default", key)
            return default

        try:
            raw = await self.backend.get(latest.url)
        except (BackendUnavailable, BackendError) as e:
            logger.warning("Failed to fetch blob %s for %s: %s", latest.url, key, e)
            if strict:
                raise
            return default

        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DocumentCorrupted(key, latest.url, str(e)) from e

    async def write(self, key: str, document: Any) -> BlobObject:
        """Store ``document`` as the new version of ``key`` and reap older ones."""
        body = json.dumps(document, indent=2).encode("utf-8")
        return await WriteOperation(self, key, body).run()

    async def update(
        self, key: str, default: Any, mutate: Callable[[Any], Any]
    ) -> Any:
        """
        Read, apply ``mutate`` and write back. Not atomic: concurrent updates
        to the same key resolve as last writer wins.

        The read is strict: a stored document that cannot be fetched is never
        replaced by ``default`` plus the mutation.

        ``mutate`` may change the value in place and return None.
        """
        current = await self.read(key, default, strict=True)
        updated = mutate(current)
        if updated is None:
            updated = current
        await self.write(key, updated)
        return updated
