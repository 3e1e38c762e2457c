"""
Per-post comment threads, the aggregate comment index and the IP ban list.

Each post keeps its comments in ``content/comments-<slug>.json``. A separate
meta document tracks counts and a short list of recent comment previews for
the admin view. All changes go through ``DocumentStore.update``, so they are
last-writer-wins like every other document.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sitecontent.documents import ContentKeys, DocumentStore, comments_key
from sitecontent.errors import ContentForbidden, ContentInvalid, ContentNotFound

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10000
MAX_AUTHOR_LENGTH = 50
MAX_RECENT_COMMENTS = 50
MAX_ADMIN_COMMENTS = 100
PREVIEW_LENGTH = 100

# Fields only the admin view may see.
PRIVATE_FIELDS = ("authorToken", "ip")

_MARKDOWN_RULES = [
    (re.compile(r"#{1,6}\s"), ""),
    (re.compile(r"\*\*|__"), ""),
    (re.compile(r"\*|_"), ""),
    (re.compile(r"`{1,3}[^`]*`{1,3}"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"\n+"), " "),
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _timestamp(value: Any) -> datetime:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def preview(content: str, max_length: int = PREVIEW_LENGTH) -> str:
    """Plain-text excerpt of markdown ``content``."""
    stripped = content
    for pattern, replacement in _MARKDOWN_RULES:
        stripped = pattern.sub(replacement, stripped)
    stripped = stripped.strip()
    if len(stripped) <= max_length:
        return stripped
    return stripped[:max_length].strip() + "..."


def public_view(comment: dict) -> dict:
    return {k: v for k, v in comment.items() if k not in PRIVATE_FIELDS}


def _empty_meta() -> dict:
    return {"totalComments": 0, "commentsByPost": {}, "recentComments": []}


def _validated_content(content: Optional[str]) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ContentInvalid("Comment content is required")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ContentInvalid(
            f"Comment is too long (max {MAX_CONTENT_LENGTH} characters)"
        )
    return content.strip()


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_meta(value: Any) -> dict:
    meta = value if isinstance(value, dict) else {}
    for k, v in _empty_meta().items():
        meta.setdefault(k, v)
    return meta


class CommentService:
    def __init__(self, documents: DocumentStore):
        self.documents = documents

    async def list_comments(self, slug: str) -> list[dict]:
        """Comments on ``slug``, oldest first, without private fields."""
        comments = _as_list(await self.documents.read(comments_key(slug), []))
        ordered = sorted(comments, key=lambda c: _timestamp(c.get("createdAt")))
        return [public_view(c) for c in ordered]

    async def create(
        self,
        slug: str,
        content: Optional[str],
        author_token: Optional[str],
        ip: str,
        author: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> dict:
        """
        Append a comment to ``slug`` and record it in the meta document.

        Raises:
            ContentForbidden: If ``ip`` is on the ban list
            ContentInvalid: If the content or author token is missing, or the
            content is too long
        """
        if await self.is_banned(ip):
            raise ContentForbidden("You are not allowed to comment")
        text = _validated_content(content)
        if not isinstance(author_token, str) or not author_token:
            raise ContentInvalid("Author token is required")

        if isinstance(author, str) and author.strip():
            author = author.strip()[:MAX_AUTHOR_LENGTH]
        else:
            author = "anonymous"

        comment = {
            "id": uuid.uuid4().hex,
            "postSlug": slug,
            "parentId": parent_id or None,
            "author": author,
            "authorToken": author_token,
            "content": text,
            "ip": ip,
            "createdAt": _now(),
            "updatedAt": None,
            "edited": False,
        }

        def append(comments):
            comments = _as_list(comments)
            comments.append(comment)
            return comments

        await self.documents.update(comments_key(slug), [], append)

        def record(meta):
            meta = _as_meta(meta)
            meta["totalComments"] += 1
            by_post = meta["commentsByPost"]
            by_post[slug] = by_post.get(slug, 0) + 1
            meta["recentComments"].insert(
                0,
                {
                    "id": comment["id"],
                    "postSlug": slug,
                    "author": author,
                    "preview": preview(text),
                    "createdAt": comment["createdAt"],
                },
            )
            del meta["recentComments"][MAX_RECENT_COMMENTS:]
            return meta

        await self.documents.update(ContentKeys.COMMENTS_META, _empty_meta(), record)
        logger.info("Comment %s added to %s", comment["id"], slug)
        return public_view(comment)

    async def edit(
        self,
        slug: str,
        comment_id: str,
        content: Optional[str],
        author_token: Optional[str] = None,
        is_admin: bool = False,
    ) -> dict:
        """
        Replace the text of a comment. The author (matched by token) or an
        admin may edit.

        Raises:
            ContentInvalid: If the new content is missing or too long
            ContentNotFound: If no comment has ``comment_id``
            ContentForbidden: If the caller is neither author nor admin
        """
        text = _validated_content(content)
        edited = {}

        def apply(comments):
            comments = _as_list(comments)
            for comment in comments:
                if comment.get("id") == comment_id:
                    break
            else:
                raise ContentNotFound("Comment not found")
            is_owner = bool(author_token) and comment.get("authorToken") == author_token
            if not is_owner and not is_admin:
                raise ContentForbidden("Not authorized to edit this comment")
            comment.update(content=text, updatedAt=_now(), edited=True)
            edited.update(comment)
            return comments

        await self.documents.update(comments_key(slug), [], apply)

        def refresh(meta):
            meta = _as_meta(meta)
            for recent in meta["recentComments"]:
                if recent.get("id") == comment_id:
                    recent["preview"] = preview(text)
            return meta

        meta = _as_meta(await self.documents.read(ContentKeys.COMMENTS_META, None))
        if any(r.get("id") == comment_id for r in meta["recentComments"]):
            await self.documents.update(ContentKeys.COMMENTS_META, _empty_meta(), refresh)
        return public_view(edited)

    async def delete(self, slug: str, comment_id: str) -> None:
        """
        Remove a comment. Its replies stay and become top-level comments.

        Raises:
            ContentNotFound: If no comment has ``comment_id``
        """

        def remove(comments):
            comments = _as_list(comments)
            if not any(c.get("id") == comment_id for c in comments):
                raise ContentNotFound("Comment not found")
            remaining = [c for c in comments if c.get("id") != comment_id]
            for comment in remaining:
                if comment.get("parentId") == comment_id:
                    comment["parentId"] = None
            return remaining

        await self.documents.update(comments_key(slug), [], remove)

        def forget(meta):
            meta = _as_meta(meta)
            meta["totalComments"] = max(0, meta["totalComments"] - 1)
            by_post = meta["commentsByPost"]
            by_post[slug] = max(0, by_post.get(slug, 1) - 1)
            meta["recentComments"] = [
                r for r in meta["recentComments"] if r.get("id") != comment_id
            ]
            return meta

        await self.documents.update(ContentKeys.COMMENTS_META, _empty_meta(), forget)
        logger.info("Comment %s removed from %s", comment_id, slug)

    async def overview(self) -> dict:
        """Admin summary: counts, new comments since last login and the 100
        newest comments across all posts, private fields included."""
        meta = _as_meta(await self.documents.read(ContentKeys.COMMENTS_META, None))
        admin = await self.documents.read(ContentKeys.ADMIN, {})
        last_login = None
        if isinstance(admin, dict):
            last_login = admin.get("lastLogin")
        last_login = last_login or "1970-01-01T00:00:00.000Z"

        everything = []
        for slug in meta["commentsByPost"]:
            everything.extend(
                _as_list(await self.documents.read(comments_key(slug), []))
            )
        everything.sort(key=lambda c: _timestamp(c.get("createdAt")), reverse=True)

        since = _timestamp(last_login)
        return {
            "totalComments": meta["totalComments"],
            "commentsByPost": meta["commentsByPost"],
            "newSinceLastLogin": sum(
                1 for c in everything if _timestamp(c.get("createdAt")) > since
            ),
            "lastLogin": last_login,
            "comments": everything[:MAX_ADMIN_COMMENTS],
        }

    # Ban list

    async def list_bans(self) -> list[dict]:
        return _as_list(await self.documents.read(ContentKeys.BANNED_IPS, []))

    async def is_banned(self, ip: str) -> bool:
        return any(entry.get("ip") == ip for entry in await self.list_bans())

    async def ban(self, ip: Optional[str], reason: Optional[str] = None) -> dict:
        """
        Raises:
            ContentInvalid: If ``ip`` is empty or already banned
        """
        if not isinstance(ip, str) or not ip.strip():
            raise ContentInvalid("IP address is required")
        ip = ip.strip()
        entry = {
            "ip": ip,
            "reason": reason or "No reason provided",
            "bannedAt": _now(),
            "bannedBy": "admin",
        }

        def add(bans):
            bans = _as_list(bans)
            if any(b.get("ip") == ip for b in bans):
                raise ContentInvalid("IP is already banned")
            bans.append(entry)
            return bans

        await self.documents.update(ContentKeys.BANNED_IPS, [], add)
        logger.info("Banned IP %s", ip)
        return entry

    async def unban(self, ip: Optional[str]) -> None:
        """
        Raises:
            ContentInvalid: If ``ip`` is empty
            ContentNotFound: If ``ip`` is not banned
        """
        if not isinstance(ip, str) or not ip.strip():
            raise ContentInvalid("IP address is required")
        ip = ip.strip()

        def remove(bans):
            bans = _as_list(bans)
            if not any(b.get("ip") == ip for b in bans):
                raise ContentNotFound("IP is not banned")
            return [b for b in bans if b.get("ip") != ip]

        await self.documents.update(ContentKeys.BANNED_IPS, [], remove)
        logger.info("Unbanned IP %s", ip)
