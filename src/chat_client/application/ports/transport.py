from __future__ import annotations

from typing import Protocol

from chat_client.application.dto.message import OutgoingFile, SendMessageDTO, UploadedFile
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.ids import ConversationId


class ChatTransport(Protocol):
    """Request/response access to the backend. Implementations raise TransportError only."""

    async def list_conversations(self) -> list[Conversation]: ...

    async def list_messages(self, conversation_id: ConversationId) -> list[Message]: ...

    async def send_message(
        self,
        conversation_id: ConversationId,
        dto: SendMessageDTO,
    ) -> Message:
        """Return the server-confirmed message."""
        ...

    async def upload(self, file: OutgoingFile) -> UploadedFile: ...
