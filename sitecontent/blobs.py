"""
Blob backend abstraction for Vercel Blob, S3-compatible storage and in-memory testing.

Every backend is append-only from the store's point of view: ``put`` always
creates a new object under a randomly suffixed pathname and never overwrites.
Listings may lag behind writes.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import posixpath
import secrets
import string
import time
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sitecontent.config import Settings
from sitecontent.errors import BackendError, BackendUnavailable, StorageNotConfigured

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_letters + string.digits
SUFFIX_LENGTH = 30

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


@dataclass(frozen=True)
class BlobObject:
    url: str
    pathname: str
    uploaded_at: datetime


class BlobBackend(Protocol):
    """Operations the document store needs from the blob backend."""

    async def put(
        self,
        pathname: str,
        body: bytes,
        *,
        content_type: str = "application/json",
        access: str = "public",
    ) -> BlobObject:
        ...

    async def list(self, prefix: str) -> list[BlobObject]:
        ...

    async def get(self, url: str) -> bytes:
        ...

    async def delete(self, url: str) -> None:
        ...


def random_suffix() -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


# Digits, then upper, then lower case: the encoding sorts like the number.
SORTABLE_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
ORDERED_PREFIX_LENGTH = 12


def ordered_suffix(now_ns: Optional[int] = None) -> str:
    """
    Random suffix whose first characters encode the creation time, so that
    suffixed names of one key sort in write order.
    """
    value = time.time_ns() if now_ns is None else now_ns
    digits = []
    for _ in range(ORDERED_PREFIX_LENGTH):
        value, digit = divmod(value, len(SORTABLE_ALPHABET))
        digits.append(SORTABLE_ALPHABET[digit])
    tail = random_suffix()[: SUFFIX_LENGTH - ORDERED_PREFIX_LENGTH]
    return "".join(reversed(digits)) + tail


def suffixed_pathname(pathname: str, suffix: str) -> str:
    """Insert ``-<suffix>`` before the extension: ``a/b.json`` -> ``a/b-xyz.json``."""
    stem, ext = posixpath.splitext(pathname)
    return f"{stem}-{suffix}{ext}"


def cache_busted(url: str) -> str:
    """Append a ``_t`` timestamp query parameter so edge caches miss."""
    parts = urllib.parse.urlsplit(url)
    query = urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
    query = [(k, v) for k, v in query if k != "_t"]
    query.append(("_t", str(int(time.time() * 1000))))
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class InMemoryBlobBackend:
    """Test double for blob interactions."""

    base_url: str = "https://example.test/blob"
    objects: dict = field(default_factory=dict)
    failing_get_urls: set = field(default_factory=set)
    fail_deletes: bool = False
    epoch: datetime = field(
        default_factory=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc)
    )

    def __post_init__(self):
        # Strictly increasing upload times, independent of wall-clock resolution.
        self._ticks = itertools.count(1)

    async def put(
        self,
        pathname: str,
        body: bytes,
        *,
        content_type: str = "application/json",
        access: str = "public",
    ) -> BlobObject:
        stored_path = suffixed_pathname(pathname, random_suffix())
        blob = BlobObject(
            url=f"{self.base_url}/{stored_path}",
            pathname=stored_path,
            uploaded_at=self.epoch + timedelta(milliseconds=next(self._ticks)),
        )
        self.objects[blob.url] = (blob, bytes(body))
        return blob

    async def list(self, prefix: str) -> list[BlobObject]:
        return [
            blob for blob, _ in self.objects.values() if blob.pathname.startswith(prefix)
        ]

    async def get(self, url: str) -> bytes:
        base_url = url.split("?", 1)[0]
        if base_url in self.failing_get_urls:
            raise BackendError(f"Failed to fetch blob: {base_url}", status_code=500)
        stored = self.objects.get(base_url)
        if stored is None:
            raise BackendError(f"Blob not found: {base_url}", status_code=404)
        return stored[1]

    async def delete(self, url: str) -> None:
        if self.fail_deletes:
            raise BackendUnavailable(f"delete failed for {url}")
        self.objects.pop(url, None)

    def reset(self) -> None:
        """Clear all stored objects (useful in tests)."""
        self.objects.clear()
        self.failing_get_urls.clear()
        self.fail_deletes = False


class VercelBlobBackend:
    """
    Vercel Blob REST client.

    Uploads ask the service to add a random suffix, so each write lands on a
    fresh URL. Reads go straight to the public object URL with cache busting.
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://blob.vercel-storage.com",
        api_version: str = "7",
        cache_max_age: int = 60,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not token:
            raise StorageNotConfigured("BLOB_READ_WRITE_TOKEN")
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.api_version = api_version
        self.cache_max_age = cache_max_age
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    def _auth_headers(self) -> dict[str, str]:
        return {
            "authorization": f"Bearer {self.token}",
            "x-api-version": self.api_version,
        }

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"{method} {url} failed: {e}") from e
        if response.status_code >= 400:
            raise BackendError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def put(
        self,
        pathname: str,
        body: bytes,
        *,
        content_type: str = "application/json",
        access: str = "public",
    ) -> BlobObject:
        headers = self._auth_headers()
        headers.update(
            {
                "x-vercel-blob-access": access,
                "x-content-type": content_type,
                "x-add-random-suffix": "1",
                "x-cache-control-max-age": str(self.cache_max_age),
            }
        )
        response = await self._request(
            "PUT",
            f"{self.api_url}/{urllib.parse.quote(pathname)}",
            content=body,
            headers=headers,
        )
        payload = response.json()
        return BlobObject(
            url=payload["url"],
            pathname=payload.get("pathname", pathname),
            uploaded_at=datetime.now(timezone.utc),
        )

    async def list(self, prefix: str) -> list[BlobObject]:
        blobs: list[BlobObject] = []
        cursor: Optional[str] = None
        while True:
            params = {"prefix": prefix, "limit": "1000"}
            if cursor:
                params["cursor"] = cursor
            response = await self._request(
                "GET", self.api_url, params=params, headers=self._auth_headers()
            )
            payload = response.json()
            for item in payload.get("blobs", []):
                blobs.append(
                    BlobObject(
                        url=item["url"],
                        pathname=item["pathname"],
                        uploaded_at=_parse_timestamp(item["uploadedAt"]),
                    )
                )
            cursor = payload.get("cursor")
            if not payload.get("hasMore") or not cursor:
                break
        return blobs

    async def get(self, url: str) -> bytes:
        response = await self._request(
            "GET", cache_busted(url), headers=dict(NO_CACHE_HEADERS)
        )
        return response.content

    async def delete(self, url: str) -> None:
        await self._request(
            "POST",
            f"{self.api_url}/delete",
            json={"urls": [url]},
            headers=self._auth_headers(),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass
class S3BlobBackend:
    """
    S3-compatible blob backend.

    Object keys carry a 30-character suffix like Vercel Blob, but its leading
    characters encode the write time. ``LastModified`` has one-second
    resolution, and versions written within the same second fall back to
    URL order, which then matches write order.
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    cache_max_age: int = 60

    def __post_init__(self):
        if not self.bucket:
            raise StorageNotConfigured("S3_BUCKET")
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def _url(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    def _key(self, url: str) -> str:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme != "s3" or parsed.netloc != self.bucket:
            raise ValueError(f"Expected s3://{self.bucket}/... URL, got {url}")
        return parsed.path.lstrip("/")

    async def _call(self, method: str, **kwargs):
        try:
            return await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except ClientError as e:
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise BackendError(f"S3 {method} failed: {e}", status_code=status) from e
        except BotoCoreError as e:
            raise BackendUnavailable(f"S3 {method} failed: {e}") from e

    async def put(
        self,
        pathname: str,
        body: bytes,
        *,
        content_type: str = "application/json",
        access: str = "public",
    ) -> BlobObject:
        key = suffixed_pathname(pathname, ordered_suffix())
        await self._call(
            "put_object",
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            CacheControl=f"public, max-age={self.cache_max_age}",
        )
        return BlobObject(
            url=self._url(key), pathname=key, uploaded_at=datetime.now(timezone.utc)
        )

    async def list(self, prefix: str) -> list[BlobObject]:
        blobs: list[BlobObject] = []
        token: Optional[str] = None
        while True:
            kwargs = {"Bucket": self.bucket, "Prefix": prefix}
            if token:
                kwargs["ContinuationToken"] = token
            page = await self._call("list_objects_v2", **kwargs)
            for item in page.get("Contents", []):
                blobs.append(
                    BlobObject(
                        url=self._url(item["Key"]),
                        pathname=item["Key"],
                        uploaded_at=item["LastModified"],
                    )
                )
            if not page.get("IsTruncated"):
                break
            token = page.get("NextContinuationToken")
        return blobs

    async def get(self, url: str) -> bytes:
        response = await self._call(
            "get_object",
            Bucket=self.bucket,
            Key=self._key(url),
            ResponseCacheControl="no-cache",
        )
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, url: str) -> None:
        await self._call("delete_object", Bucket=self.bucket, Key=self._key(url))


def make_blob_backend(settings: Settings) -> BlobBackend:
    """
    Create the blob backend named by the settings.

    Raises:
        StorageNotConfigured: If the selected provider is missing its credential
    """
    if settings.use_in_memory_backends:
        return InMemoryBlobBackend()

    if settings.blob_provider == "s3":
        return S3BlobBackend(
            bucket=settings.s3_bucket or "",
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            cache_max_age=settings.blob_cache_max_age,
        )

    if not settings.blob_read_write_token:
        logger.error("BLOB_READ_WRITE_TOKEN is not set")
        raise StorageNotConfigured("BLOB_READ_WRITE_TOKEN")
    return VercelBlobBackend(
        settings.blob_read_write_token,
        api_url=settings.blob_api_url,
        api_version=settings.blob_api_version,
        cache_max_age=settings.blob_cache_max_age,
        timeout=settings.blob_request_timeout,
    )
