from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_client.domain.entities.participant import Participant
from chat_client.domain.value_objects.enums import ContentKind
from chat_client.domain.value_objects.ids import ConversationId, UserId


@dataclass(frozen=True, slots=True)
class Conversation:
    """Peer-to-peer conversation; ``participants`` holds exactly two identities."""

    id: ConversationId
    participants: tuple[Participant, Participant]
    last_message: str | None
    last_message_kind: ContentKind | None
    last_activity_at: datetime
    created_at: datetime

    def peer_of(self, user_id: UserId) -> Participant:
        for p in self.participants:
            if p.id != user_id:
                return p
        return self.participants[0]
