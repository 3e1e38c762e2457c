"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from sitecontent.auth import AuthGate
from sitecontent.blobs import BlobBackend, make_blob_backend
from sitecontent.comments import CommentService
from sitecontent.config import get_settings
from sitecontent.documents import DocumentStore
from sitecontent.kv import InMemoryKeyValueBackend, KeyValueBackend, RedisKeyValueBackend
from sitecontent.sessions import SessionStore

_blob_backend: BlobBackend | None = None
_kv_backend: KeyValueBackend | None = None


def get_blob_backend() -> BlobBackend:
    """
    Return a singleton blob backend so in-memory state persists across requests.

    Raises StorageNotConfigured when the blob credential is missing; the
    error is raised again on every call until configuration is fixed.
    """
    global _blob_backend
    if _blob_backend:
        return _blob_backend
    _blob_backend = make_blob_backend(get_settings())
    return _blob_backend


def get_kv_backend() -> KeyValueBackend:
    global _kv_backend
    if _kv_backend:
        return _kv_backend

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.kv_url:
        _kv_backend = InMemoryKeyValueBackend()
    else:
        _kv_backend = RedisKeyValueBackend(url=settings.kv_url)
    return _kv_backend


def get_document_store() -> DocumentStore:
    return DocumentStore(get_blob_backend())


def get_session_store() -> SessionStore:
    return SessionStore(get_kv_backend(), get_settings())


def get_auth_gate() -> AuthGate:
    return AuthGate(get_document_store(), get_session_store(), get_settings())


def get_comment_service() -> CommentService:
    return CommentService(get_document_store())


def reset_dependencies() -> None:
    """Drop cached backends and settings (useful in tests)."""
    global _blob_backend, _kv_backend
    _blob_backend = None
    _kv_backend = None
    get_settings.cache_clear()
