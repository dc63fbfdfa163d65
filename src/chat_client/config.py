from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:3000/api"
    API_TOKEN: str = ""
    USER_ID: str = ""

    CONVERSATIONS_PATH: str = "/chats"
    MESSAGES_PATH: str = "/messages"
    SEND_PATH: str = "/message/send"
    UPLOAD_PATH: str = "/upload"

    POLL_INTERVAL_SECONDS: float = 5.0

    REQUEST_TIMEOUT_SECONDS: float = 15.0
    UPLOAD_TIMEOUT_SECONDS: float = 60.0
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    AUTOSCROLL_THRESHOLD_PX: int = 100

    ACTIVE_WINDOW_SECONDS: int = 300

    @property
    def auth_headers(self) -> dict[str, str]:
        if not self.API_TOKEN:
            return {}
        return {"Authorization": f"Bearer {self.API_TOKEN}"}

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
