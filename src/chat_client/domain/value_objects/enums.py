from __future__ import annotations

from enum import StrEnum


class ContentKind(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    VIDEO = "video"
    AUDIO = "audio"


class DeliveryStatus(StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    ERROR = "error"


class UploadState(StrEnum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    FAILED = "failed"


class AttachmentKind(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"

    @classmethod
    def from_mime(cls, mime_type: str | None) -> AttachmentKind:
        major = (mime_type or "").partition("/")[0].strip().lower()
        if major == "image":
            return cls.IMAGE
        if major == "video":
            return cls.VIDEO
        if major == "audio":
            return cls.AUDIO
        return cls.FILE

    @property
    def content_kind(self) -> ContentKind:
        return ContentKind(self.value)


class ChangeReason(StrEnum):
    LOADED = "loaded"
    MERGED = "merged"
    OPTIMISTIC = "optimistic"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    ATTACHMENT = "attachment"
    DISCARDED = "discarded"
