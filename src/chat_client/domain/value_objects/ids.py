from __future__ import annotations

from typing import NewType

ConversationId = NewType("ConversationId", str)
MessageId = NewType("MessageId", str)
ProvisionalId = NewType("ProvisionalId", str)
UserId = NewType("UserId", str)
