from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class Principal:
    """Signed-in user the engine acts for. Authentication itself happens elsewhere."""

    user_id: UserId
    display_name: str = ""

    def is_self(self, user_id: str | None) -> bool:
        return user_id == self.user_id
