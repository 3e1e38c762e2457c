"""
Visitor log kept as a single JSON document, newest entry first.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sitecontent.config import Settings
from sitecontent.documents import ContentKeys, DocumentStore

MAX_USER_AGENT_LENGTH = 200


def client_ip(headers) -> str:
    ip = headers.get("x-forwarded-for") or headers.get("x-real-ip") or "unknown"
    return ip.split(",")[0].strip()


def _parse(timestamp: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def record_visit(
    documents: DocumentStore,
    settings: Settings,
    ip: str,
    user_agent: Optional[str],
    now: Optional[datetime] = None,
) -> bool:
    """
    Prepend a visit unless the same IP was seen within the dedupe window.

    Returns True when a new entry was written.
    """
    now = now or datetime.now(timezone.utc)
    logs = await documents.read(ContentKeys.VISITORS, [])
    if not isinstance(logs, list):
        logs = []

    cutoff = now - timedelta(seconds=settings.visit_dedupe_seconds)
    for log in logs:
        seen_at = _parse(log.get("timestamp", ""))
        if log.get("ip") == ip and seen_at is not None and seen_at > cutoff:
            return False

    logs.insert(
        0,
        {
            "ip": ip,
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "userAgent": (user_agent or "unknown")[:MAX_USER_AGENT_LENGTH],
        },
    )
    await documents.write(ContentKeys.VISITORS, logs[: settings.max_visitor_logs])
    return True
