"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from chat_client.application.dto.message import OutgoingFile, SendMessageDTO, UploadedFile
from chat_client.application.dto.principal import Principal
from chat_client.application.exceptions import TransportError, UploadError
from chat_client.config import Settings
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message
from chat_client.domain.entities.participant import Participant
from chat_client.domain.value_objects.delivery import Confirmed
from chat_client.domain.value_objects.enums import ContentKind, DeliveryStatus
from chat_client.domain.value_objects.ids import ConversationId, MessageId, UserId

T0 = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

ME = UserId("u-me")
PEER = UserId("u-peer")
C1 = ConversationId("C1")
C2 = ConversationId("C2")
C3 = ConversationId("C3")


@dataclass
class FixedClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id=ME, display_name="Me")


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        POLL_INTERVAL_SECONDS=0.01,
        REQUEST_TIMEOUT_SECONDS=0.2,
        UPLOAD_TIMEOUT_SECONDS=0.2,
        MAX_UPLOAD_BYTES=1024,
    )


def make_message(
    message_id: str,
    *,
    conversation_id: ConversationId = C1,
    sender_id: UserId = PEER,
    content: str = "hello",
    created_at: datetime = T0,
    status: DeliveryStatus = DeliveryStatus.SENT,
    client_msg_id: str | None = None,
) -> Message:
    return Message(
        delivery=Confirmed(MessageId(message_id)),
        conversation_id=conversation_id,
        sender_id=sender_id,
        receiver_id=ME if sender_id != ME else PEER,
        content=content,
        kind=ContentKind.TEXT,
        status=status,
        created_at=created_at,
        updated_at=created_at,
        client_msg_id=client_msg_id,
    )


def make_participant(user_id: UserId, first: str = "", last: str = "", **kwargs) -> Participant:
    return Participant(id=user_id, first_name=first, last_name=last, **kwargs)


def make_conversation(
    conversation_id: ConversationId = C1,
    *,
    peer: Participant | None = None,
    last_message: str | None = "see you",
    last_message_kind: ContentKind | None = None,
    last_activity_at: datetime = T0,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        participants=(
            make_participant(ME, "Me", "Myself"),
            peer or make_participant(PEER, "Ada", "Lovelace"),
        ),
        last_message=last_message,
        last_message_kind=last_message_kind,
        last_activity_at=last_activity_at,
        created_at=T0 - timedelta(days=30),
    )


def make_file(name: str, mime_type: str = "image/png", size: int = 16) -> OutgoingFile:
    return OutgoingFile(name=name, mime_type=mime_type, data=b"x" * size)


@dataclass
class FakeTransport:
    """In-memory backend for unit tests."""

    conversations: list[Conversation] = field(default_factory=list)
    server_messages: dict[str, list[Message]] = field(default_factory=dict)
    fail_listing: bool = False
    fail_messages: bool = False
    fail_send: bool = False
    echo_client_msg_id: bool = False
    failing_uploads: set[str] = field(default_factory=set)
    send_gate: asyncio.Event | None = None
    clock: FixedClock = field(default_factory=FixedClock)
    sent: list[tuple[ConversationId, SendMessageDTO]] = field(default_factory=list)
    fetches: list[ConversationId] = field(default_factory=list)
    uploads: list[str] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(42))

    async def list_conversations(self) -> list[Conversation]:
        if self.fail_listing:
            raise TransportError("listing unavailable")
        return list(self.conversations)

    async def list_messages(self, conversation_id: ConversationId) -> list[Message]:
        self.fetches.append(conversation_id)
        if self.fail_messages:
            raise TransportError("messages unavailable")
        return list(self.server_messages.get(conversation_id, []))

    async def send_message(self, conversation_id: ConversationId, dto: SendMessageDTO) -> Message:
        self.sent.append((conversation_id, dto))
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.fail_send:
            raise TransportError("send rejected", status_code=500)
        return self.accept(conversation_id, dto)

    async def upload(self, file: OutgoingFile) -> UploadedFile:
        self.uploads.append(file.name)
        if file.name in self.failing_uploads:
            raise UploadError(f"{file.name} rejected")
        return UploadedFile(
            url=f"https://cdn.test/{file.name}",
            mime_type=file.mime_type,
            name=file.name,
            size=file.size,
        )

    def accept(self, conversation_id: ConversationId, dto: SendMessageDTO) -> Message:
        """Store ``dto`` server-side and return the confirmed copy."""
        msg = Message(
            delivery=Confirmed(MessageId(f"M{next(self._ids)}")),
            conversation_id=conversation_id,
            sender_id=ME,
            receiver_id=dto.receiver_id,
            content=dto.content,
            kind=dto.kind,
            status=DeliveryStatus.SENT,
            created_at=self.clock.now(),
            updated_at=self.clock.now(),
            attachments=dto.attachments,
            client_msg_id=dto.client_msg_id if self.echo_client_msg_id else None,
        )
        self.server_messages.setdefault(conversation_id, []).append(msg)
        return msg


@pytest.fixture
def transport(clock) -> FakeTransport:
    return FakeTransport(clock=clock)
