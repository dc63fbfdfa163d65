"""Periodic re-fetch of the active conversation.

At most one poll task is live at any time: ``activate`` always releases the
previous handle before arming a new one. Network errors inside a tick are logged
and the next tick runs on schedule; there is no backoff.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

from chat_client.application.exceptions import AppError
from chat_client.domain.value_objects.ids import ConversationId

logger = logging.getLogger(__name__)

FetchAndMerge = Callable[[ConversationId], Coroutine[Any, Any, None]]


class PollHandle:
    """Owned, cancellable timer bound to one conversation."""

    def __init__(self, conversation_id: ConversationId) -> None:
        self.conversation_id = conversation_id
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled and self._task is not None and not self._task.done()

    def bind(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None:
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class PollingScheduler:
    def __init__(self, fetch_and_merge: FetchAndMerge, interval: float) -> None:
        self._fetch_and_merge = fetch_and_merge
        self._interval = interval
        self._handle: PollHandle | None = None
        self._refreshes: set[asyncio.Task[None]] = set()

    @property
    def active_conversation(self) -> ConversationId | None:
        return self._handle.conversation_id if self._handle else None

    @property
    def is_running(self) -> bool:
        return self._handle is not None and self._handle.active

    @property
    def handle(self) -> PollHandle | None:
        return self._handle

    def activate(self, conversation_id: ConversationId) -> PollHandle:
        """Idle/Active -> Active. Must be called from inside a running event loop."""
        self._release()
        handle = PollHandle(conversation_id)
        task = asyncio.get_running_loop().create_task(
            self._run(handle), name=f"poll-{conversation_id}",
        )
        handle.bind(task)
        self._handle = handle
        logger.info("Polling %s every %.1fs", conversation_id, self._interval)
        return handle

    def deactivate(self) -> None:
        """Active -> Idle. No store mutation happens after this returns."""
        self._release()

    async def close(self) -> None:
        handle = self._handle
        refreshes = list(self._refreshes)
        self.deactivate()
        if handle is not None:
            await handle.wait_closed()
        for task in refreshes:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def refresh(self) -> None:
        """Out-of-band fetch-and-merge; the timer's schedule is left untouched."""
        handle = self._handle
        if handle is None:
            return
        task = asyncio.get_running_loop().create_task(self._tick(handle))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _release(self) -> None:
        for task in list(self._refreshes):
            task.cancel()
        if self._handle is None:
            return
        logger.info("Stopped polling %s", self._handle.conversation_id)
        self._handle.cancel()
        self._handle = None

    async def _run(self, handle: PollHandle) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self._tick(handle)

    async def _tick(self, handle: PollHandle) -> None:
        if handle is not self._handle:
            return
        try:
            await self._fetch_and_merge(handle.conversation_id)
        except asyncio.CancelledError:
            raise
        except AppError as exc:
            logger.warning("Poll of %s failed: %s", handle.conversation_id, exc.detail)
        except Exception:
            logger.exception("Poll of %s crashed", handle.conversation_id)
