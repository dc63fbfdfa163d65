"""Messaging facade for one signed-in user.

Wires the conversation directory, message store, polling scheduler, attachment
pipeline and viewport controller together. All methods run on the event loop;
network calls are the only suspension points and every optimistic insert
happens before the first one.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Sequence

from chat_client.application.dto.conversation import ConversationView
from chat_client.application.dto.message import MessageDraft, OutgoingFile, SendMessageDTO
from chat_client.application.dto.principal import Principal
from chat_client.application.exceptions import AppError, TransportError, ValidationError
from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.application.ports.transport import ChatTransport
from chat_client.config import Settings, settings
from chat_client.domain.entities.message import Message
from chat_client.domain.events.messages_changed import MessagesChanged
from chat_client.domain.value_objects.ids import ConversationId, ProvisionalId, UserId
from chat_client.services import conversation_directory
from chat_client.services.attachment_pipeline import (
    AttachmentPipeline,
    content_kind_for,
    pending_attachments,
)
from chat_client.services.message_store import MessageStore
from chat_client.services.polling_scheduler import PollingScheduler
from chat_client.services.viewport import ViewportAction, ViewportController

logger = logging.getLogger(__name__)

ViewportCallback = Callable[[ViewportAction, MessagesChanged], None]


class MessagingSession:
    def __init__(
        self,
        principal: Principal,
        transport: ChatTransport,
        *,
        config: Settings = settings,
        clock: Clock | None = None,
        store: MessageStore | None = None,
        on_viewport: ViewportCallback | None = None,
    ) -> None:
        self.principal = principal
        self._transport = transport
        self._config = config
        self._clock = clock or SystemClock()
        self._request_timeout = config.REQUEST_TIMEOUT_SECONDS
        self._on_viewport = on_viewport

        self.store = store or MessageStore(self._clock)
        self.viewport = ViewportController(config.AUTOSCROLL_THRESHOLD_PX)
        self.scheduler = PollingScheduler(self._fetch_and_merge, config.POLL_INTERVAL_SECONDS)
        self.pipeline = AttachmentPipeline(
            transport,
            self.store,
            max_bytes=config.MAX_UPLOAD_BYTES,
            upload_timeout=config.UPLOAD_TIMEOUT_SECONDS,
        )

        self._conversations: dict[ConversationId, ConversationView] = {}
        self._files: dict[ProvisionalId, tuple[ConversationId, list[OutgoingFile]]] = {}
        self._unsubscribe = self.store.subscribe(self._on_store_change)

    @property
    def active_conversation(self) -> ConversationId | None:
        return self.scheduler.active_conversation

    @property
    def conversations(self) -> list[ConversationView]:
        return list(self._conversations.values())

    async def refresh_conversations(self) -> list[ConversationView]:
        views = await conversation_directory.list_conversations(
            self.principal,
            self._transport,
            self._clock,
            active_window=timedelta(seconds=self._config.ACTIVE_WINDOW_SECONDS),
        )
        self._conversations = {v.id: v for v in views}
        return views

    async def select(self, conversation_id: ConversationId) -> None:
        """Make ``conversation_id`` active: reset auto-follow, rebind polling, load."""
        self.viewport.activate(conversation_id)
        self.scheduler.activate(conversation_id)
        try:
            messages = await self._fetch(conversation_id)
        except AppError as exc:
            logger.warning("Initial load of %s failed: %s", conversation_id, exc.detail)
            return
        if self.active_conversation != conversation_id:
            return
        self.store.load(conversation_id, messages)
        self._forget_reconciled(conversation_id)

    def deselect(self) -> None:
        self.scheduler.deactivate()
        self.viewport.deactivate()

    async def refresh(self) -> None:
        await self.scheduler.refresh()

    async def send_text(self, content: str) -> ProvisionalId:
        conversation_id = self._require_active()
        if not content.strip():
            raise ValidationError("Message is empty")

        draft = MessageDraft(
            sender_id=self.principal.user_id,
            receiver_id=self._receiver_for(conversation_id),
            content=content,
        )
        provisional_id = self.store.send_optimistic(conversation_id, draft)
        await self._deliver(
            conversation_id,
            provisional_id,
            SendMessageDTO(
                client_msg_id=provisional_id,
                content=content,
                receiver_id=draft.receiver_id,
            ),
        )
        return provisional_id

    async def send_files(self, files: Sequence[OutgoingFile], content: str = "") -> ProvisionalId:
        conversation_id = self._require_active()
        if not files:
            raise ValidationError("No files selected")

        draft = MessageDraft(
            sender_id=self.principal.user_id,
            receiver_id=self._receiver_for(conversation_id),
            content=content,
            kind=content_kind_for(files),
            attachments=pending_attachments(files),
        )
        provisional_id = self.store.send_optimistic(conversation_id, draft)
        self._files[provisional_id] = (conversation_id, list(files))
        await self._upload_and_deliver(conversation_id, provisional_id)
        return provisional_id

    async def resend(
        self,
        provisional_id: ProvisionalId,
        conversation_id: ConversationId | None = None,
    ) -> bool:
        """Manual resend of a failed message. Returns False if nothing was resent."""
        conversation_id = conversation_id or self._require_active()
        message = self.store.retry(conversation_id, provisional_id)
        if message is None:
            return False

        if message.attachments:
            await self._upload_and_deliver(conversation_id, provisional_id)
        else:
            await self._deliver(
                conversation_id,
                provisional_id,
                SendMessageDTO(
                    client_msg_id=provisional_id,
                    content=message.content,
                    receiver_id=message.receiver_id,
                ),
            )
        return True

    def discard(
        self,
        provisional_id: ProvisionalId,
        conversation_id: ConversationId | None = None,
    ) -> bool:
        """Drop a failed message and the local files kept for resending it."""
        conversation_id = conversation_id or self._require_active()
        removed = self.store.discard(conversation_id, provisional_id)
        if removed:
            self._files.pop(provisional_id, None)
        return removed

    async def close(self) -> None:
        await self.scheduler.close()
        self.viewport.deactivate()
        self._unsubscribe()
        self._files.clear()

    async def _upload_and_deliver(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
    ) -> None:
        message = self.store.find(conversation_id, provisional_id)
        if message is None:
            return
        missing = {i for i, a in enumerate(message.attachments) if not a.is_durable}
        if missing:
            pending = self._files.get(provisional_id)
            if pending is None:
                logger.warning("Local files for %s are gone, cannot upload", provisional_id)
                self.store.fail_send(conversation_id, provisional_id)
                return
            result = await self.pipeline.upload_batch(
                conversation_id, provisional_id, pending[1], only=missing,
            )
            if not result.complete:
                return

        message = self.store.find(conversation_id, provisional_id)
        if message is None or not message.all_attachments_durable:
            return
        await self._deliver(
            conversation_id,
            provisional_id,
            SendMessageDTO(
                client_msg_id=provisional_id,
                content=message.content,
                kind=message.kind,
                receiver_id=message.receiver_id,
                attachments=message.attachments,
            ),
        )

    async def _deliver(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
        dto: SendMessageDTO,
    ) -> None:
        try:
            confirmed = await asyncio.wait_for(
                self._transport.send_message(conversation_id, dto),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Send of %s timed out", provisional_id)
            self.store.fail_send(conversation_id, provisional_id)
            return
        except AppError as exc:
            logger.warning("Send of %s failed: %s", provisional_id, exc.detail)
            self.store.fail_send(conversation_id, provisional_id)
            return

        self.store.confirm_send(conversation_id, provisional_id, confirmed)
        self._files.pop(provisional_id, None)
        logger.debug("Send of %s confirmed as %s", provisional_id, confirmed.id)

    async def _fetch(self, conversation_id: ConversationId) -> list[Message]:
        try:
            return await asyncio.wait_for(
                self._transport.list_messages(conversation_id),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Fetching messages of {conversation_id} timed out") from exc

    async def _fetch_and_merge(self, conversation_id: ConversationId) -> None:
        messages = await self._fetch(conversation_id)
        if self.store.merge_incoming(conversation_id, messages):
            self._forget_reconciled(conversation_id)

    def _forget_reconciled(self, conversation_id: ConversationId) -> None:
        gone = [
            pid for pid, (cid, _) in self._files.items()
            if cid == conversation_id and self.store.find(cid, pid) is None
        ]
        for pid in gone:
            del self._files[pid]

    def _on_store_change(self, event: MessagesChanged) -> None:
        action = self.viewport.on_change(event)
        if action != ViewportAction.NONE and self._on_viewport is not None:
            self._on_viewport(action, event)

    def _receiver_for(self, conversation_id: ConversationId) -> UserId | None:
        view = self._conversations.get(conversation_id)
        return view.peer_id if view else None

    def _require_active(self) -> ConversationId:
        conversation_id = self.active_conversation
        if conversation_id is None:
            raise ValidationError("No conversation selected")
        return conversation_id
