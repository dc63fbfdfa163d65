"""Wire models for the chat backend (JSON field names as the backend sends them)."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _ref_id(value: Any) -> Any:
    """References arrive either as a bare id or as a populated document."""
    if isinstance(value, dict):
        return value.get("_id") or value.get("id")
    return value


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserPayload(_Wire):
    id: str = Field(alias="_id")
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    username: str = ""
    avatar: str | None = None
    last_seen: datetime | None = Field(None, alias="lastSeen")


class AttachmentPayload(_Wire):
    url: str
    type: str = ""
    name: str = ""
    size: int | None = None


class MessagePayload(_Wire):
    id: str = Field(alias="_id")
    conversation: str | None = None
    sender: str
    receiver: str | None = None
    content: str = ""
    attachments: list[AttachmentPayload] = []
    type: str = "text"
    status: str = "sent"
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")
    client_msg_id: str | None = Field(None, alias="clientMsgId")

    @field_validator("conversation", "sender", "receiver", mode="before")
    @classmethod
    def _unwrap_ref(cls, value: Any) -> Any:
        return _ref_id(value)


class LastMessagePayload(_Wire):
    content: str = ""
    type: str = "text"


class ConversationPayload(_Wire):
    id: str = Field(alias="_id")
    users: list[UserPayload]
    last_message: str | LastMessagePayload | None = Field(None, alias="lastMessage")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")


class UploadPayload(_Wire):
    url: str
    name: str | None = None
    type: str | None = None
    size: int | None = None


class SendMessageRequest(_Wire):
    conversation: str
    chat_id: str = Field(alias="chatId")
    content: str
    type: str = "text"
    receiver: str | None = None
    attachments: list[AttachmentPayload] = []
    client_msg_id: str = Field(alias="clientMsgId")
