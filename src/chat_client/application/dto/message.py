from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path

from chat_client.domain.entities.attachment import Attachment
from chat_client.domain.value_objects.enums import ContentKind
from chat_client.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class MessageDraft:
    """What the user composed; becomes an optimistic message."""

    sender_id: UserId
    receiver_id: UserId | None
    content: str = ""
    kind: ContentKind = ContentKind.TEXT
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    """Payload for the message-send endpoint."""

    client_msg_id: str
    content: str
    kind: ContentKind = ContentKind.TEXT
    receiver_id: UserId | None = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class OutgoingFile:
    name: str
    mime_type: str
    data: bytes
    path: Path | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path | str, mime_type: str | None = None) -> OutgoingFile:
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            mime_type=mime_type or guessed or "application/octet-stream",
            data=path.read_bytes(),
            path=path,
        )


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """Durable resource returned by the upload endpoint."""

    url: str
    mime_type: str
    name: str
    size: int | None = None
