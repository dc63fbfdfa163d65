"""Per-conversation ordered message lists with optimistic sends and poll merges.

Ordering key is ``(created_at, first_seen)`` where ``first_seen`` is a store-wide
sequence number assigned the first time a message (by confirmed or provisional
id) enters a conversation. Confirmed ids are unique within a conversation.
Store methods never raise; upstream failures arrive through ``fail_send`` and the
attachment markers.
"""
from __future__ import annotations

import itertools
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Iterable, assert_never

from chat_client.application.dto.message import MessageDraft
from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.domain.entities.message import Message
from chat_client.domain.events.messages_changed import MessagesChanged
from chat_client.domain.value_objects.delivery import Confirmed, Failed, Provisional
from chat_client.domain.value_objects.enums import ChangeReason, DeliveryStatus
from chat_client.domain.value_objects.ids import ConversationId, MessageId, ProvisionalId

logger = logging.getLogger(__name__)

Listener = Callable[[MessagesChanged], None]

_STATUS_RANK = {
    DeliveryStatus.ERROR: 0,
    DeliveryStatus.SENT: 0,
    DeliveryStatus.DELIVERED: 1,
    DeliveryStatus.READ: 2,
}


def new_provisional_id() -> str:
    return f"temp-{uuid.uuid4().hex}"


@dataclass(slots=True)
class _Entry:
    message: Message
    seq: int


def _identity(message: Message) -> tuple[str, str]:
    delivery = message.delivery
    if isinstance(delivery, Confirmed):
        return "confirmed", delivery.id
    if isinstance(delivery, (Provisional, Failed)):
        return "provisional", delivery.id
    assert_never(delivery)


class MessageStore:
    def __init__(
        self,
        clock: Clock | None = None,
        id_factory: Callable[[], str] = new_provisional_id,
    ) -> None:
        self._clock = clock or SystemClock()
        self._new_id = id_factory
        self._lists: dict[ConversationId, list[_Entry]] = {}
        self._seq = itertools.count()
        self._listeners: list[Listener] = []

    # -- reads ----------------------------------------------------------------

    def messages(self, conversation_id: ConversationId) -> list[Message]:
        return [e.message for e in self._lists.get(conversation_id, [])]

    def find(self, conversation_id: ConversationId, provisional_id: ProvisionalId) -> Message | None:
        entry = self._find_provisional(conversation_id, provisional_id)
        return entry.message if entry else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- server data ----------------------------------------------------------

    def load(self, conversation_id: ConversationId, server_messages: Iterable[Message]) -> list[Message]:
        """Replace the server-known part of the list.

        Local messages that never reached the server (in flight or failed) stay
        visible unless the batch reconciles them through ``client_msg_id``, or,
        for failed ones, through a matching own message (see ``_pop_failed_twin``).
        """
        previous = self._lists.get(conversation_id, [])
        known_seq = {
            e.message.id: e.seq for e in previous if e.message.id is not None
        }
        local = {
            e.message.provisional_id: e for e in previous if not e.message.is_confirmed
        }

        entries: list[_Entry] = []
        seen: set[MessageId] = set()
        for msg in self._confirmed_only(server_messages):
            if msg.id in seen:
                continue
            seen.add(msg.id)
            twin = local.pop(msg.client_msg_id, None) if msg.client_msg_id else None
            if twin is None and msg.id not in known_seq:
                twin = self._pop_failed_twin(local, msg)
            if msg.id in known_seq:
                seq = known_seq[msg.id]
            elif twin is not None:
                seq = twin.seq
            else:
                seq = next(self._seq)
            entries.append(_Entry(msg, seq))
        entries.extend(local.values())

        self._lists[conversation_id] = self._sorted(entries)
        self._notify(conversation_id, ChangeReason.LOADED, grew=len(entries) > len(previous))
        return self.messages(conversation_id)

    def merge_incoming(self, conversation_id: ConversationId, server_messages: Iterable[Message]) -> bool:
        """Idempotent union by confirmed id. Returns True when the list changed."""
        entries = self._lists.setdefault(conversation_id, [])
        by_id = {e.message.id: e for e in entries if e.message.id is not None}
        by_client = {
            e.message.provisional_id: e for e in entries if not e.message.is_confirmed
        }

        changed = False
        grew = False
        for msg in self._confirmed_only(server_messages):
            existing = by_id.get(msg.id)
            if existing is not None:
                changed |= self._apply_transition(existing, msg)
                continue

            twin = by_client.pop(msg.client_msg_id, None) if msg.client_msg_id else None
            if twin is None:
                twin = self._pop_failed_twin(by_client, msg)
            if twin is not None:
                logger.debug(
                    "Poll reconciled %s as %s in %s",
                    twin.message.provisional_id, msg.id, conversation_id,
                )
                twin.message = msg
                by_id[msg.id] = twin
            else:
                entry = _Entry(msg, next(self._seq))
                entries.append(entry)
                by_id[msg.id] = entry
                grew = True
            changed = True

        if changed:
            self._lists[conversation_id] = self._sorted(entries)
            self._notify(conversation_id, ChangeReason.MERGED, grew=grew)
        return changed

    # -- optimistic sends -----------------------------------------------------

    def send_optimistic(self, conversation_id: ConversationId, draft: MessageDraft) -> ProvisionalId:
        provisional_id = ProvisionalId(self._new_id())
        now = self._clock.now()
        msg = Message(
            delivery=Provisional(provisional_id),
            conversation_id=conversation_id,
            sender_id=draft.sender_id,
            receiver_id=draft.receiver_id,
            content=draft.content,
            kind=draft.kind,
            status=DeliveryStatus.SENT,
            created_at=now,
            updated_at=now,
            attachments=draft.attachments,
            client_msg_id=provisional_id,
        )
        entries = self._lists.setdefault(conversation_id, [])
        entries.append(_Entry(msg, next(self._seq)))
        self._lists[conversation_id] = self._sorted(entries)
        self._notify(conversation_id, ChangeReason.OPTIMISTIC, grew=True)
        return provisional_id

    def confirm_send(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
        confirmed: Message,
    ) -> None:
        if not confirmed.is_confirmed:
            logger.warning(
                "Ignoring confirmation of %s without a server id", provisional_id,
            )
            return

        entries = self._lists.setdefault(conversation_id, [])
        local = self._find_provisional(conversation_id, provisional_id)
        if local is not None:
            entries.remove(local)

        existing = next((e for e in entries if e.message.id == confirmed.id), None)
        if existing is not None:
            # a poll delivered it first
            logger.debug("Message %s already present in %s", confirmed.id, conversation_id)
            self._apply_transition(existing, confirmed)
            grew = False
        else:
            seq = local.seq if local is not None else next(self._seq)
            entries.append(_Entry(confirmed, seq))
            grew = local is None

        self._lists[conversation_id] = self._sorted(self._dedupe(entries))
        self._notify(conversation_id, ChangeReason.CONFIRMED, grew=grew)

    def fail_send(self, conversation_id: ConversationId, provisional_id: ProvisionalId) -> None:
        entry = self._find_provisional(conversation_id, provisional_id)
        if entry is None:
            logger.debug(
                "fail_send: %s not pending in %s (already reconciled?)",
                provisional_id, conversation_id,
            )
            return
        if isinstance(entry.message.delivery, Failed):
            return
        entry.message = self._as_failed(entry.message)
        self._notify(conversation_id, ChangeReason.FAILED)

    def retry(self, conversation_id: ConversationId, provisional_id: ProvisionalId) -> Message | None:
        """Move a failed message back in flight for a manual resend."""
        entry = self._find_provisional(conversation_id, provisional_id)
        if entry is None or not isinstance(entry.message.delivery, Failed):
            return None
        entry.message = replace(
            entry.message,
            delivery=Provisional(provisional_id),
            status=DeliveryStatus.SENT,
            updated_at=self._clock.now(),
        )
        self._notify(conversation_id, ChangeReason.OPTIMISTIC)
        return entry.message

    def discard(self, conversation_id: ConversationId, provisional_id: ProvisionalId) -> bool:
        """Drop a failed message the user has acknowledged."""
        entry = self._find_provisional(conversation_id, provisional_id)
        if entry is None or not isinstance(entry.message.delivery, Failed):
            return False
        self._lists[conversation_id].remove(entry)
        self._notify(conversation_id, ChangeReason.DISCARDED)
        return True

    # -- attachments ----------------------------------------------------------

    def mark_attachment_uploaded(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
        index: int,
        url: str,
        size: int | None = None,
    ) -> None:
        entry = self._attachment_owner(conversation_id, provisional_id, index)
        if entry is None:
            return
        attachment = entry.message.attachments[index].uploaded(url, size)
        entry.message = entry.message.with_attachment(index, attachment)
        self._notify(conversation_id, ChangeReason.ATTACHMENT)

    def mark_attachment_failed(
        self,
        conversation_id: ConversationId,
        provisional_id: ProvisionalId,
        index: int,
        reason: str,
    ) -> None:
        entry = self._attachment_owner(conversation_id, provisional_id, index)
        if entry is None:
            return
        attachment = entry.message.attachments[index].failed(reason)
        entry.message = self._as_failed(entry.message.with_attachment(index, attachment))
        self._notify(conversation_id, ChangeReason.ATTACHMENT)

    # -- internals ------------------------------------------------------------

    def _find_provisional(
        self, conversation_id: ConversationId, provisional_id: ProvisionalId,
    ) -> _Entry | None:
        for entry in self._lists.get(conversation_id, []):
            if entry.message.provisional_id == provisional_id:
                return entry
        return None

    def _attachment_owner(
        self, conversation_id: ConversationId, provisional_id: ProvisionalId, index: int,
    ) -> _Entry | None:
        entry = self._find_provisional(conversation_id, provisional_id)
        if entry is None or not 0 <= index < len(entry.message.attachments):
            logger.debug(
                "No attachment #%d on %s in %s", index, provisional_id, conversation_id,
            )
            return None
        return entry

    def _as_failed(self, message: Message) -> Message:
        return replace(
            message,
            delivery=Failed(message.provisional_id),
            status=DeliveryStatus.ERROR,
            updated_at=self._clock.now(),
        )

    @staticmethod
    def _apply_transition(entry: _Entry, incoming: Message) -> bool:
        """Take status and update time from ``incoming`` only if it is newer.

        Equal update times fall back to status rank, so batches applied in any
        order settle on the same state.
        """
        current = entry.message
        if incoming.updated_at < current.updated_at:
            return False
        if incoming.updated_at == current.updated_at and (
            _STATUS_RANK[incoming.status] <= _STATUS_RANK[current.status]
        ):
            return False
        entry.message = replace(current, status=incoming.status, updated_at=incoming.updated_at)
        return True

    @staticmethod
    def _pop_failed_twin(local: dict[ProvisionalId, _Entry], incoming: Message) -> _Entry | None:
        """Oldest failed own message that ``incoming`` most likely is.

        A send that timed out client-side may still have been stored. Backends
        that do not echo ``client_msg_id`` leave content as the only match.
        """
        if incoming.client_msg_id is not None:
            return None
        for key, entry in sorted(local.items(), key=lambda kv: kv[1].seq):
            candidate = entry.message
            if (
                isinstance(candidate.delivery, Failed)
                and candidate.sender_id == incoming.sender_id
                and candidate.content == incoming.content
                and candidate.kind == incoming.kind
                and len(candidate.attachments) == len(incoming.attachments)
            ):
                logger.debug("Failed send %s arrived as %s", key, incoming.id)
                return local.pop(key)
        return None

    @staticmethod
    def _confirmed_only(messages: Iterable[Message]) -> Iterable[Message]:
        for msg in messages:
            if msg.is_confirmed:
                yield msg
            else:
                logger.debug("Skipping unconfirmed message in server batch")

    @staticmethod
    def _dedupe(entries: list[_Entry]) -> list[_Entry]:
        seen: set[tuple[str, str]] = set()
        unique: list[_Entry] = []
        for entry in sorted(entries, key=lambda e: e.seq):
            key = _identity(entry.message)
            if key in seen:
                continue
            seen.add(key)
            unique.append(entry)
        return unique

    @staticmethod
    def _sorted(entries: list[_Entry]) -> list[_Entry]:
        return sorted(entries, key=lambda e: (e.message.created_at, e.seq))

    def _notify(self, conversation_id: ConversationId, reason: ChangeReason, *, grew: bool = False) -> None:
        event = MessagesChanged(
            conversation_id=conversation_id,
            reason=reason,
            count=len(self._lists.get(conversation_id, [])),
            grew=grew,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Store listener failed on %s", reason)
