from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from chat_client.application.dto.message import MessageDraft
from chat_client.domain.entities.attachment import Attachment
from chat_client.domain.value_objects.enums import ChangeReason, DeliveryStatus, UploadState
from chat_client.services.message_store import MessageStore
from tests.conftest import C1, C2, ME, PEER, T0, make_message


@pytest.fixture
def store(clock) -> MessageStore:
    ids = iter(f"temp-{n}" for n in range(1, 100))
    return MessageStore(clock, id_factory=lambda: next(ids))


def _draft(content: str = "hi", attachments: tuple[Attachment, ...] = ()) -> MessageDraft:
    return MessageDraft(sender_id=ME, receiver_id=PEER, content=content, attachments=attachments)


def _ids(store: MessageStore, conversation_id=C1) -> list[str]:
    return [m.id or m.provisional_id for m in store.messages(conversation_id)]


def test_load_sorts_by_creation_time(store):
    later = make_message("M2", created_at=T0 + timedelta(seconds=5))
    earlier = make_message("M1", created_at=T0)

    result = store.load(C1, [later, earlier])

    assert [m.id for m in result] == ["M1", "M2"]


def test_load_replaces_server_messages(store):
    store.load(C1, [make_message("M1"), make_message("M2")])

    store.load(C1, [make_message("M3")])

    assert _ids(store) == ["M3"]


def test_load_keeps_unconfirmed_local_messages(store, clock):
    store.load(C1, [make_message("M1", created_at=T0 - timedelta(seconds=1))])
    pid = store.send_optimistic(C1, _draft())

    store.load(C1, [make_message("M1", created_at=T0 - timedelta(seconds=1))])

    assert _ids(store) == ["M1", pid]


def test_conversations_are_independent(store):
    store.load(C1, [make_message("M1")])
    store.load(C2, [make_message("M9", conversation_id=C2)])

    assert _ids(store, C1) == ["M1"]
    assert _ids(store, C2) == ["M9"]


def test_merge_is_idempotent(store):
    batch = [
        make_message("M1", created_at=T0),
        make_message("M2", created_at=T0 + timedelta(seconds=1)),
    ]

    assert store.merge_incoming(C1, batch) is True
    once = store.messages(C1)
    assert store.merge_incoming(C1, batch) is False

    assert store.messages(C1) == once


def test_merge_unions_overlapping_batches(store):
    store.merge_incoming(C1, [make_message("M1", created_at=T0)])
    store.merge_incoming(
        C1,
        [
            make_message("M1", created_at=T0),
            make_message("M3", created_at=T0 + timedelta(seconds=3)),
            make_message("M2", created_at=T0 + timedelta(seconds=2)),
        ],
    )

    assert _ids(store) == ["M1", "M2", "M3"]


def test_merge_drops_duplicates_inside_one_batch(store):
    store.merge_incoming(C1, [make_message("M1"), make_message("M1")])

    assert _ids(store) == ["M1"]


def test_equal_timestamps_keep_first_seen_order(store):
    store.merge_incoming(C1, [make_message("B", created_at=T0)])
    store.merge_incoming(C1, [make_message("A", created_at=T0), make_message("B", created_at=T0)])
    store.merge_incoming(C1, [make_message("C", created_at=T0)])

    assert _ids(store) == ["B", "A", "C"]


def test_merge_applies_status_transitions_only(store):
    store.merge_incoming(C1, [make_message("M1", content="original")])
    read = replace(
        make_message("M1", content="edited elsewhere", status=DeliveryStatus.READ),
        updated_at=T0 + timedelta(minutes=1),
    )

    assert store.merge_incoming(C1, [read]) is True

    [msg] = store.messages(C1)
    assert msg.status == DeliveryStatus.READ
    assert msg.updated_at == T0 + timedelta(minutes=1)
    assert msg.content == "original"


def test_send_optimistic_appends_in_flight_message(store):
    store.load(C1, [make_message("M1", created_at=T0 - timedelta(minutes=1))])

    pid = store.send_optimistic(C1, _draft("hi"))

    last = store.messages(C1)[-1]
    assert last.provisional_id == pid
    assert last.id is None
    assert last.sending is True
    assert last.status == DeliveryStatus.SENT
    assert last.content == "hi"
    assert last.client_msg_id == pid


def test_confirm_send_replaces_provisional_exactly_once(store, clock):
    pid = store.send_optimistic(C1, _draft("hi"))
    confirmed = make_message("M42", sender_id=ME, content="hi", created_at=clock.now())

    store.confirm_send(C1, pid, confirmed)

    messages = store.messages(C1)
    assert [m.id for m in messages] == ["M42"]
    assert all(m.provisional_id is None for m in messages)
    assert store.find(C1, pid) is None


def test_poll_before_confirmation_leaves_one_copy(store, clock):
    pid = store.send_optimistic(C1, _draft("hi"))
    server_copy = make_message("M42", sender_id=ME, content="hi", created_at=clock.now())

    store.merge_incoming(C1, [server_copy])
    store.confirm_send(C1, pid, server_copy)
    store.merge_incoming(C1, [server_copy])

    assert _ids(store) == ["M42"]


def test_poll_with_echoed_client_id_reconciles_before_confirmation(store, clock):
    pid = store.send_optimistic(C1, _draft("hi"))
    server_copy = make_message(
        "M42", sender_id=ME, content="hi", created_at=clock.now(), client_msg_id=pid,
    )

    store.merge_incoming(C1, [server_copy])
    assert _ids(store) == ["M42"]

    store.confirm_send(C1, pid, server_copy)
    assert _ids(store) == ["M42"]


def test_confirmation_then_poll_is_idempotent(store, clock):
    pid = store.send_optimistic(C1, _draft("hi"))
    confirmed = make_message("M42", sender_id=ME, content="hi", created_at=clock.now())

    store.confirm_send(C1, pid, confirmed)
    assert store.merge_incoming(C1, [confirmed]) is False

    assert _ids(store) == ["M42"]


def test_confirmed_message_moves_to_server_position(store, clock):
    store.load(C1, [make_message("M1", created_at=T0 - timedelta(seconds=10))])
    pid = store.send_optimistic(C1, _draft("mine"))
    store.merge_incoming(C1, [make_message("M2", created_at=T0 + timedelta(seconds=1))])

    store.confirm_send(
        C1, pid, make_message("M3", sender_id=ME, created_at=T0 + timedelta(seconds=2)),
    )

    assert _ids(store) == ["M1", "M2", "M3"]


def test_fail_send_keeps_message_visible_with_error(store):
    pid = store.send_optimistic(C1, _draft("hi"))

    store.fail_send(C1, pid)

    [msg] = store.messages(C1)
    assert msg.provisional_id == pid
    assert msg.status == DeliveryStatus.ERROR
    assert msg.sending is False


def test_fail_send_unknown_id_is_noop(store):
    store.load(C1, [make_message("M1")])

    store.fail_send(C1, "temp-missing")

    assert _ids(store) == ["M1"]


def test_fail_after_confirmation_does_not_touch_confirmed(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    store.confirm_send(C1, pid, make_message("M42", sender_id=ME))

    store.fail_send(C1, pid)

    [msg] = store.messages(C1)
    assert msg.id == "M42"
    assert msg.status == DeliveryStatus.SENT


def test_retry_puts_failed_message_back_in_flight(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    store.fail_send(C1, pid)

    msg = store.retry(C1, pid)

    assert msg is not None
    assert msg.sending is True
    assert msg.status == DeliveryStatus.SENT
    assert store.retry(C1, pid) is None


def test_discard_only_removes_failed_messages(store):
    pid = store.send_optimistic(C1, _draft("hi"))

    assert store.discard(C1, pid) is False
    store.fail_send(C1, pid)
    assert store.discard(C1, pid) is True

    assert store.messages(C1) == []


def test_attachment_markers(store):
    pending = tuple(
        Attachment(url=f"local://{n}", mime_type="image/png", name=n, state=UploadState.PENDING)
        for n in ("a.png", "b.png")
    )
    pid = store.send_optimistic(C1, _draft("", attachments=pending))

    store.mark_attachment_uploaded(C1, pid, 0, "https://cdn.test/a.png", 10)
    store.mark_attachment_failed(C1, pid, 1, "too large")

    msg = store.find(C1, pid)
    assert msg.attachments[0].state == UploadState.UPLOADED
    assert msg.attachments[0].url == "https://cdn.test/a.png"
    assert msg.attachments[1].state == UploadState.FAILED
    assert msg.attachments[1].error == "too large"
    assert msg.status == DeliveryStatus.ERROR


def test_listeners_receive_changes(store):
    events = []
    unsubscribe = store.subscribe(events.append)

    pid = store.send_optimistic(C1, _draft())
    store.fail_send(C1, pid)
    unsubscribe()
    store.discard(C1, pid)

    assert [e.reason for e in events] == [ChangeReason.OPTIMISTIC, ChangeReason.FAILED]
    assert events[0].grew is True
    assert events[0].count == 1


def test_listener_errors_do_not_escape(store):
    def _boom(_event):
        raise RuntimeError("render failed")

    store.subscribe(_boom)

    pid = store.send_optimistic(C1, _draft())

    assert store.find(C1, pid) is not None


def test_offline_send_then_confirmation(store, clock):
    pid = store.send_optimistic(C1, _draft("hi"))
    [pending] = store.messages(C1)
    assert pending.sending is True
    assert pending.status == DeliveryStatus.SENT

    clock.advance(30)
    store.confirm_send(
        C1, pid, make_message("M42", sender_id=ME, content="hi", created_at=clock.now()),
    )

    [msg] = store.messages(C1)
    assert msg.id == "M42"
    assert msg.content == "hi"
    assert msg.provisional_id is None
    assert msg.sending is False


def test_stale_confirmation_does_not_regress_polled_status(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    read = replace(
        make_message("M42", sender_id=ME, content="hi", status=DeliveryStatus.READ),
        updated_at=T0 + timedelta(seconds=5),
    )

    store.merge_incoming(C1, [read])
    store.confirm_send(C1, pid, make_message("M42", sender_id=ME, content="hi"))

    [msg] = store.messages(C1)
    assert (msg.id, msg.status) == ("M42", DeliveryStatus.READ)


def test_confirmation_then_poll_settles_on_same_status(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    read = replace(
        make_message("M42", sender_id=ME, content="hi", status=DeliveryStatus.READ),
        updated_at=T0 + timedelta(seconds=5),
    )

    store.confirm_send(C1, pid, make_message("M42", sender_id=ME, content="hi"))
    store.merge_incoming(C1, [read])

    [msg] = store.messages(C1)
    assert (msg.id, msg.status) == ("M42", DeliveryStatus.READ)


def test_older_poll_batch_does_not_regress_status(store):
    newer = replace(
        make_message("M1", status=DeliveryStatus.READ), updated_at=T0 + timedelta(seconds=9),
    )
    older = make_message("M1", status=DeliveryStatus.DELIVERED)

    store.merge_incoming(C1, [newer])
    assert store.merge_incoming(C1, [older]) is False

    [msg] = store.messages(C1)
    assert msg.status == DeliveryStatus.READ
    assert msg.updated_at == T0 + timedelta(seconds=9)


def test_equal_update_times_keep_furthest_status_in_any_order(store):
    read = make_message("M1", status=DeliveryStatus.READ)
    delivered = make_message("M1", status=DeliveryStatus.DELIVERED)

    store.merge_incoming(C1, [read])
    store.merge_incoming(C1, [delivered])
    store.merge_incoming(C2, [replace(delivered, conversation_id=C2)])
    store.merge_incoming(C2, [replace(read, conversation_id=C2)])

    assert store.messages(C1)[0].status == DeliveryStatus.READ
    assert store.messages(C2)[0].status == DeliveryStatus.READ


def test_failed_send_that_reached_the_server_is_reconciled_by_poll(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    store.fail_send(C1, pid)

    store.merge_incoming(C1, [make_message("M42", sender_id=ME, content="hi")])

    assert _ids(store) == ["M42"]
    assert store.find(C1, pid) is None
    assert store.retry(C1, pid) is None


def test_load_reconciles_failed_send_that_reached_the_server(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    store.fail_send(C1, pid)

    store.load(C1, [make_message("M42", sender_id=ME, content="hi")])

    assert _ids(store) == ["M42"]


def test_failed_send_is_kept_when_only_others_match(store):
    pid = store.send_optimistic(C1, _draft("hi"))
    store.fail_send(C1, pid)

    store.merge_incoming(
        C1,
        [
            make_message("M7", sender_id=PEER, content="hi"),
            make_message("M8", sender_id=ME, content="something else"),
        ],
    )

    assert _ids(store) == [pid, "M7", "M8"]
    assert store.find(C1, pid).status == DeliveryStatus.ERROR
