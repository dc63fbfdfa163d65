from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.value_objects.ids import ConversationId, UserId


@dataclass(frozen=True, slots=True)
class ConversationView:
    """UI-ready row of the conversation directory."""

    id: ConversationId
    name: str
    avatar: str
    last_message: str
    timestamp: str
    peer_id: UserId
    presence: str = ""
    unread_count: int = 0
    online: bool = False
