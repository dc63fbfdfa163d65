from __future__ import annotations

import logging
from datetime import datetime, timedelta

from chat_client.application.dto.conversation import ConversationView
from chat_client.application.dto.principal import Principal
from chat_client.application.exceptions import AppError
from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.application.ports.transport import ChatTransport
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.value_objects.enums import ContentKind

logger = logging.getLogger(__name__)

DEFAULT_AVATAR = "/default-avatar.png"
EMPTY_PREVIEW = "No messages yet"

_PREVIEW_LABELS: dict[ContentKind, str] = {
    ContentKind.IMAGE: "📷 Image",
    ContentKind.FILE: "📎 File",
    ContentKind.VIDEO: "🎬 Video",
    ContentKind.AUDIO: "🎵 Audio",
}


async def list_conversations(
    principal: Principal,
    transport: ChatTransport,
    clock: Clock | None = None,
    *,
    active_window: timedelta = timedelta(minutes=5),
) -> list[ConversationView]:
    """Most recently active first. A failed fetch yields an empty list."""
    try:
        conversations = await transport.list_conversations()
    except AppError as exc:
        logger.warning("Failed to fetch conversations: %s", exc.detail)
        return []

    now = (clock or SystemClock()).now()
    ordered = sorted(conversations, key=lambda c: c.last_activity_at, reverse=True)
    return [to_view(c, principal, now, active_window=active_window) for c in ordered]


def to_view(
    conversation: Conversation,
    principal: Principal,
    now: datetime,
    *,
    active_window: timedelta = timedelta(minutes=5),
) -> ConversationView:
    peer = conversation.peer_of(principal.user_id)
    return ConversationView(
        id=conversation.id,
        name=peer.display_name,
        avatar=peer.avatar or DEFAULT_AVATAR,
        last_message=preview_text(conversation.last_message, conversation.last_message_kind),
        timestamp=describe_recency(conversation.last_activity_at, now),
        peer_id=peer.id,
        presence=describe_last_seen(peer.last_seen, now, active_window=active_window),
    )


def preview_text(content: str | None, kind: ContentKind | None) -> str:
    if kind is not None and kind in _PREVIEW_LABELS:
        return _PREVIEW_LABELS[kind]
    return content or EMPTY_PREVIEW


def describe_last_seen(
    last_seen: datetime | None,
    now: datetime,
    *,
    active_window: timedelta = timedelta(minutes=5),
) -> str:
    if last_seen is None:
        return ""
    diff = now - last_seen
    if diff < active_window:
        return "Active"
    minutes = int(diff.total_seconds() // 60)
    if diff < timedelta(hours=1):
        return f"{minutes} minutes ago"
    if diff < timedelta(days=1):
        return f"{minutes // 60} hours ago"
    days = diff.days
    if diff < timedelta(days=7):
        return f"{days} days ago"
    if diff < timedelta(days=30):
        return f"{days // 7} weeks ago"
    return f"{days // 30} months ago"


def describe_recency(ts: datetime, now: datetime) -> str:
    local_ts = ts.astimezone(now.tzinfo)
    day_gap = (now.date() - local_ts.date()).days
    if day_gap <= 0:
        return local_ts.strftime("%H:%M")
    if day_gap == 1:
        return "Yesterday"
    if day_gap < 7:
        return local_ts.strftime("%A")
    return local_ts.date().isoformat()
