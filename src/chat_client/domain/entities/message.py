from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from chat_client.domain.entities.attachment import Attachment
from chat_client.domain.value_objects.delivery import Confirmed, Delivery, Failed, Provisional
from chat_client.domain.value_objects.enums import ContentKind, DeliveryStatus
from chat_client.domain.value_objects.ids import ConversationId, MessageId, ProvisionalId, UserId


@dataclass(frozen=True, slots=True)
class Message:
    delivery: Delivery
    conversation_id: ConversationId
    sender_id: UserId
    receiver_id: UserId | None
    content: str
    kind: ContentKind
    status: DeliveryStatus
    created_at: datetime
    updated_at: datetime
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    client_msg_id: str | None = None

    @property
    def id(self) -> MessageId | None:
        """Server-assigned identifier, ``None`` until confirmed."""
        if isinstance(self.delivery, Confirmed):
            return self.delivery.id
        return None

    @property
    def provisional_id(self) -> ProvisionalId | None:
        if isinstance(self.delivery, (Provisional, Failed)):
            return self.delivery.id
        return None

    @property
    def sending(self) -> bool:
        return isinstance(self.delivery, Provisional)

    @property
    def is_confirmed(self) -> bool:
        return isinstance(self.delivery, Confirmed)

    @property
    def all_attachments_durable(self) -> bool:
        return all(a.is_durable for a in self.attachments)

    def with_attachment(self, index: int, attachment: Attachment) -> Message:
        items = list(self.attachments)
        items[index] = attachment
        return replace(self, attachments=tuple(items))
