from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_client.domain.value_objects.ids import UserId


@dataclass(frozen=True, slots=True)
class Participant:
    id: UserId
    first_name: str = ""
    last_name: str = ""
    username: str = ""
    avatar: str | None = None
    last_seen: datetime | None = None

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username or self.id
