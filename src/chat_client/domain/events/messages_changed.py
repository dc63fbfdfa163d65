from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.value_objects.enums import ChangeReason
from chat_client.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class MessagesChanged:
    conversation_id: ConversationId
    reason: ChangeReason
    count: int
    grew: bool = False  # a message was added to the list
