from __future__ import annotations

import logging
from datetime import datetime, timezone

from chat_client.application.dto.message import SendMessageDTO, UploadedFile
from chat_client.domain.entities.attachment import Attachment
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message
from chat_client.domain.entities.participant import Participant
from chat_client.domain.value_objects.delivery import Confirmed
from chat_client.domain.value_objects.enums import ContentKind, DeliveryStatus
from chat_client.domain.value_objects.ids import ConversationId, MessageId, UserId
from chat_client.infrastructure.http.schemas import (
    AttachmentPayload,
    ConversationPayload,
    LastMessagePayload,
    MessagePayload,
    SendMessageRequest,
    UploadPayload,
    UserPayload,
)

logger = logging.getLogger(__name__)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _content_kind(raw: str) -> ContentKind:
    try:
        return ContentKind(raw)
    except ValueError:
        return ContentKind.TEXT


def _delivery_status(raw: str) -> DeliveryStatus:
    try:
        return DeliveryStatus(raw)
    except ValueError:
        return DeliveryStatus.SENT


def payload_to_message(payload: MessagePayload, conversation_id: ConversationId) -> Message:
    created_at = _aware(payload.created_at)
    return Message(
        delivery=Confirmed(MessageId(payload.id)),
        conversation_id=ConversationId(payload.conversation or conversation_id),
        sender_id=UserId(payload.sender),
        receiver_id=UserId(payload.receiver) if payload.receiver else None,
        content=payload.content,
        kind=_content_kind(payload.type),
        status=_delivery_status(payload.status),
        created_at=created_at,
        updated_at=_aware(payload.updated_at) if payload.updated_at else created_at,
        attachments=tuple(
            Attachment(url=a.url, mime_type=a.type, name=a.name, size=a.size)
            for a in payload.attachments
        ),
        client_msg_id=payload.client_msg_id,
    )


def payload_to_participant(payload: UserPayload) -> Participant:
    return Participant(
        id=UserId(payload.id),
        first_name=payload.first_name,
        last_name=payload.last_name,
        username=payload.username,
        avatar=payload.avatar,
        last_seen=_aware(payload.last_seen) if payload.last_seen else None,
    )


def payload_to_conversation(payload: ConversationPayload) -> Conversation | None:
    if len(payload.users) != 2:
        logger.warning(
            "Skipping conversation %s with %d participants", payload.id, len(payload.users),
        )
        return None

    last = payload.last_message
    if isinstance(last, LastMessagePayload):
        preview, kind = last.content, _content_kind(last.type)
    else:
        preview, kind = last, None

    created_at = _aware(payload.created_at)
    first, second = (payload_to_participant(u) for u in payload.users)
    return Conversation(
        id=ConversationId(payload.id),
        participants=(first, second),
        last_message=preview,
        last_message_kind=kind,
        last_activity_at=_aware(payload.updated_at) if payload.updated_at else created_at,
        created_at=created_at,
    )


def dto_to_request(conversation_id: ConversationId, dto: SendMessageDTO) -> SendMessageRequest:
    return SendMessageRequest(
        conversation=conversation_id,
        chat_id=conversation_id,
        content=dto.content,
        type=dto.kind.value,
        receiver=dto.receiver_id,
        attachments=[
            AttachmentPayload(url=a.url, type=a.mime_type, name=a.name, size=a.size)
            for a in dto.attachments
        ],
        client_msg_id=dto.client_msg_id,
    )


def payload_to_uploaded(payload: UploadPayload, name: str, mime_type: str, size: int) -> UploadedFile:
    return UploadedFile(
        url=payload.url,
        mime_type=payload.type or mime_type,
        name=payload.name or name,
        size=payload.size if payload.size is not None else size,
    )
