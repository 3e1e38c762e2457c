"""Typed exceptions for the content store and the auth layer."""


class SiteContentError(RuntimeError):
    """Base class for all sitecontent errors."""
    pass


# Storage Errors
class StorageError(SiteContentError):
    """Base class for storage-related errors."""
    pass


class StorageNotConfigured(StorageError):
    """A required storage credential or setting is missing."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"Storage not configured: {setting} missing")


class BackendUnavailable(StorageError):
    """Network or transport failure talking to a storage backend."""
    pass


class BackendError(StorageError):
    """Storage backend answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class DocumentCorrupted(StorageError):
    """Stored bytes for a document could not be parsed as JSON."""

    def __init__(self, key: str, url: str, reason: str):
        self.key = key
        self.url = url
        super().__init__(f"Stored document '{key}' at {url} is not valid JSON: {reason}")


# Auth Errors
class AuthError(SiteContentError):
    """Base class for expected authentication outcomes."""
    pass


class AuthRequired(AuthError):
    """No valid session accompanied the request."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthInvalid(AuthError):
    """Submitted password did not match."""

    def __init__(self, message: str = "Invalid password"):
        super().__init__(message)


class PasswordPolicyError(AuthError):
    """New password does not satisfy the length policy."""

    def __init__(self, min_length: int):
        self.min_length = min_length
        super().__init__(f"New password must be at least {min_length} characters")


# Content Errors
class ContentError(SiteContentError):
    """Base class for rejected operations on stored content."""
    pass


class ContentNotFound(ContentError):
    """The addressed item does not exist in its document."""
    pass


class ContentForbidden(ContentError):
    """The caller may not perform this operation on the item."""
    pass


class ContentInvalid(ContentError):
    """Submitted content failed validation."""
    pass
