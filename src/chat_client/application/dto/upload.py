from __future__ import annotations

from dataclasses import dataclass, field

from chat_client.application.dto.message import UploadedFile


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Outcome of one attachment batch, indexed by position in the batch."""

    uploaded: dict[int, UploadedFile] = field(default_factory=dict)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failed

    def durable(self) -> list[UploadedFile]:
        return [self.uploaded[i] for i in sorted(self.uploaded)]
