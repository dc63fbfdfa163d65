"""Entrypoint: python -m chat_client [conversation_id]"""
from __future__ import annotations

import argparse
import asyncio
import logging

from chat_client.application.dto.principal import Principal
from chat_client.application.ports.clock import SystemClock
from chat_client.config import settings
from chat_client.domain.events.messages_changed import MessagesChanged
from chat_client.domain.value_objects.ids import ConversationId, UserId
from chat_client.infrastructure.http.transport import HttpChatTransport
from chat_client.services.messaging_session import MessagingSession

logger = logging.getLogger(__name__)


async def _print_directory(session: MessagingSession) -> None:
    views = await session.refresh_conversations()
    if not views:
        print("No conversations yet")
    for view in views:
        print(f"{view.id}  {view.name:<24} {view.timestamp:>10}  {view.last_message}")


async def _tail(session: MessagingSession, conversation_id: ConversationId) -> None:
    printed: set[str] = set()

    def _show(event: MessagesChanged) -> None:
        for msg in session.store.messages(event.conversation_id):
            if msg.id is None or msg.id in printed:
                continue
            printed.add(msg.id)
            who = "me" if session.principal.is_self(msg.sender_id) else msg.sender_id
            print(f"[{msg.created_at:%H:%M}] {who}: {msg.content}")

    session.store.subscribe(_show)
    await session.refresh_conversations()
    await session.select(conversation_id)
    logger.info("Tailing %s, Ctrl+C to stop", conversation_id)
    while True:
        await asyncio.sleep(3600)


async def run(conversation_id: str | None) -> None:
    transport = HttpChatTransport.create(settings)
    session = MessagingSession(
        Principal(user_id=UserId(settings.USER_ID)), transport, clock=SystemClock.local(),
    )
    try:
        if conversation_id is None:
            await _print_directory(session)
        else:
            await _tail(session, ConversationId(conversation_id))
    except asyncio.CancelledError:
        pass
    finally:
        await session.close()
        await transport.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(prog="chat_client")
    parser.add_argument("conversation_id", nargs="?", help="conversation to follow")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run(args.conversation_id))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
