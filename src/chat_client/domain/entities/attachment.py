from __future__ import annotations

from dataclasses import dataclass, replace

from chat_client.domain.value_objects.enums import AttachmentKind, UploadState


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    mime_type: str
    name: str
    size: int | None = None
    state: UploadState = UploadState.UPLOADED
    error: str | None = None

    @property
    def kind(self) -> AttachmentKind:
        return AttachmentKind.from_mime(self.mime_type)

    @property
    def is_durable(self) -> bool:
        return self.state == UploadState.UPLOADED

    def uploaded(self, url: str, size: int | None = None) -> Attachment:
        return replace(
            self,
            url=url,
            size=size if size is not None else self.size,
            state=UploadState.UPLOADED,
            error=None,
        )

    def failed(self, reason: str) -> Attachment:
        return replace(self, state=UploadState.FAILED, error=reason)
