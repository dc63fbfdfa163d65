"""Uploads the files of one message and records per-file results in the store.

Failures are per file: a failed upload marks its own attachment and flips the
owning message to ``error`` while its siblings keep uploading.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Sequence
from urllib.parse import quote

from chat_client.application.dto.message import OutgoingFile, UploadedFile
from chat_client.application.dto.upload import BatchResult
from chat_client.application.exceptions import AppError, UploadError, ValidationError
from chat_client.application.ports.transport import ChatTransport
from chat_client.domain.entities.attachment import Attachment
from chat_client.domain.value_objects.enums import AttachmentKind, ContentKind, UploadState
from chat_client.domain.value_objects.ids import ConversationId, ProvisionalId
from chat_client.services.message_store import MessageStore

logger = logging.getLogger(__name__)


def ephemeral_locator(file: OutgoingFile) -> str:
    if file.path is not None:
        return file.path.resolve().as_uri()
    return f"local://{uuid.uuid4().hex}/{quote(file.name)}"


def pending_attachments(files: Sequence[OutgoingFile]) -> tuple[Attachment, ...]:
    """Attachments pointing at local resources, rendered before any upload."""
    return tuple(
        Attachment(
            url=ephemeral_locator(f),
            mime_type=f.mime_type,
            name=f.name,
            size=f.size,
            state=UploadState.PENDING,
        )
        for f in files
    )


def content_kind_for(files: Sequence[OutgoingFile]) -> ContentKind:
    kinds = {AttachmentKind.from_mime(f.mime_type) for f in files}
    if len(kinds) == 1:
        return kinds.pop().content_kind
    return ContentKind.FILE


class AttachmentPipeline:
    def __init__(
        self,
        transport: ChatTransport,
        store: MessageStore,
        *,
        max_bytes: int,
        upload_timeout: float,
    ) -> None:
        self._transport = transport
        self._store = store
        self._max_bytes = max_bytes
        self._upload_timeout = upload_timeout

    async def upload_batch(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
        files: Sequence[OutgoingFile],
        *,
        only: set[int] | None = None,
    ) -> BatchResult:
        """Upload ``files`` (or the ``only`` indexes of them) concurrently.

        Each outcome is written to the owning message as soon as it is known.
        """
        indexes = [i for i in range(len(files)) if only is None or i in only]
        outcomes = await asyncio.gather(
            *(self._upload_and_mark(conversation_id, provisional_id, i, files[i]) for i in indexes),
        )

        uploaded = {i: o for i, o in zip(indexes, outcomes) if isinstance(o, UploadedFile)}
        failed = {i: o for i, o in zip(indexes, outcomes) if isinstance(o, str)}
        result = BatchResult(uploaded=uploaded, failed=failed)
        if result.complete:
            logger.info("Uploaded %d file(s) for %s", len(uploaded), provisional_id)
        else:
            logger.warning(
                "Upload batch for %s: %d ok, %d failed (%s)",
                provisional_id, len(uploaded), len(failed),
                ", ".join(files[i].name for i in sorted(failed)),
            )
        return result

    async def _upload_and_mark(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
        index: int,
        file: OutgoingFile,
    ) -> UploadedFile | str:
        try:
            uploaded = await self._upload_one(file)
        except AppError as exc:
            reason = exc.detail or type(exc).__name__
            self._store.mark_attachment_failed(conversation_id, provisional_id, index, reason)
            return reason
        self._store.mark_attachment_uploaded(
            conversation_id, provisional_id, index, uploaded.url, uploaded.size,
        )
        return uploaded

    async def _upload_one(self, file: OutgoingFile) -> UploadedFile:
        if file.size > self._max_bytes:
            raise ValidationError(f"{file.name} is larger than {self._max_bytes} bytes")
        try:
            return await asyncio.wait_for(
                self._transport.upload(file), timeout=self._upload_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise UploadError(f"Upload of {file.name} timed out") from exc
