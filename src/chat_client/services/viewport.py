from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from chat_client.domain.events.messages_changed import MessagesChanged
from chat_client.domain.value_objects.ids import ConversationId


class ViewportAction(StrEnum):
    NONE = "none"
    SNAP_TO_BOTTOM = "snap_to_bottom"
    SHOW_NEW_MESSAGES = "show_new_messages"


@dataclass(slots=True)
class ViewState:
    following: bool = True
    unseen: int = 0


class ViewportController:
    """Decides whether store changes should move the user's scroll position."""

    def __init__(self, threshold_px: int = 100) -> None:
        self._threshold = threshold_px
        self._states: dict[ConversationId, ViewState] = {}
        self._active: ConversationId | None = None

    @property
    def active_conversation(self) -> ConversationId | None:
        return self._active

    @property
    def following(self) -> bool:
        return self._state().following

    @property
    def unseen(self) -> int:
        return self._state().unseen

    def activate(self, conversation_id: ConversationId) -> None:
        self._active = conversation_id
        self._states[conversation_id] = ViewState()

    def deactivate(self) -> None:
        self._active = None

    def should_auto_follow(self, scroll_top: float, scroll_height: float, viewport_height: float) -> bool:
        distance = scroll_height - scroll_top - viewport_height
        following = distance < self._threshold
        state = self._state()
        state.following = following
        if following:
            state.unseen = 0
        return following

    def on_change(self, event: MessagesChanged) -> ViewportAction:
        if event.conversation_id != self._active:
            return ViewportAction.NONE
        state = self._state()
        if state.following:
            return ViewportAction.SNAP_TO_BOTTOM
        if not event.grew:
            return ViewportAction.NONE
        state.unseen += 1
        return ViewportAction.SHOW_NEW_MESSAGES

    def acknowledge(self) -> None:
        """User jumped to the newest message via the affordance."""
        state = self._state()
        state.following = True
        state.unseen = 0

    def _state(self) -> ViewState:
        if self._active is None:
            return ViewState()
        return self._states.setdefault(self._active, ViewState())
