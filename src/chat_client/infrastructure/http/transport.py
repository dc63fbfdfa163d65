"""``ChatTransport`` over HTTP/JSON with httpx."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chat_client.application.dto.message import OutgoingFile, SendMessageDTO, UploadedFile
from chat_client.application.exceptions import TransportError, UploadError
from chat_client.config import Settings, settings
from chat_client.domain.entities.conversation import Conversation
from chat_client.domain.entities.message import Message
from chat_client.domain.value_objects.ids import ConversationId
from chat_client.infrastructure.http.hooks import attach_request_id, log_response
from chat_client.infrastructure.http.mappers import (
    dto_to_request,
    payload_to_conversation,
    payload_to_message,
    payload_to_uploaded,
)
from chat_client.infrastructure.http.schemas import (
    ConversationPayload,
    MessagePayload,
    UploadPayload,
)

logger = logging.getLogger(__name__)

_conversations_adapter = TypeAdapter(list[ConversationPayload])
_messages_adapter = TypeAdapter(list[MessagePayload])


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class HttpChatTransport:
    """Implements application.ports.transport.ChatTransport."""

    def __init__(self, client: httpx.AsyncClient, config: Settings = settings) -> None:
        self._client = client
        self._config = config

    @classmethod
    def create(
        cls,
        config: Settings = settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HttpChatTransport:
        client = httpx.AsyncClient(
            base_url=config.API_BASE_URL,
            headers=config.auth_headers,
            timeout=config.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
            event_hooks={"request": [attach_request_id], "response": [log_response]},
        )
        return cls(client, config)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_conversations(self) -> list[Conversation]:
        body = await self._request("GET", self._config.CONVERSATIONS_PATH)
        items = body.get("chats", []) if isinstance(body, dict) else body
        payloads = self._parse(_conversations_adapter, items, "conversation list")
        return [c for c in map(payload_to_conversation, payloads) if c is not None]

    async def list_messages(self, conversation_id: ConversationId) -> list[Message]:
        body = await self._request(
            "GET", self._config.MESSAGES_PATH, params={"id": conversation_id},
        )
        items = body.get("messages", []) if isinstance(body, dict) else body
        payloads = self._parse(_messages_adapter, items, "message list")
        return [payload_to_message(p, conversation_id) for p in payloads]

    async def send_message(
        self,
        conversation_id: ConversationId,
        dto: SendMessageDTO,
    ) -> Message:
        request = dto_to_request(conversation_id, dto)
        body = await self._request(
            "POST",
            self._config.SEND_PATH,
            json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        payload = self._pick_sent(body, dto)
        return payload_to_message(payload, conversation_id)

    async def upload(self, file: OutgoingFile) -> UploadedFile:
        body = await self._request(
            "POST",
            self._config.UPLOAD_PATH,
            files={"file": (file.name, file.data, file.mime_type)},
            timeout=self._config.UPLOAD_TIMEOUT_SECONDS,
            error_cls=UploadError,
        )
        payload = self._parse(TypeAdapter(UploadPayload), body, f"upload of {file.name}", UploadError)
        return payload_to_uploaded(payload, file.name, file.mime_type, file.size)

    def _pick_sent(self, body: Any, dto: SendMessageDTO) -> MessagePayload:
        """Find our message in a send response.

        The endpoint answers with ``{"message": {...}}`` or with the whole
        conversation as ``{"messages": [...]}``.
        """
        if isinstance(body, dict) and "messages" in body:
            candidates = self._parse(_messages_adapter, body["messages"], "send response")
            if not candidates:
                raise TransportError("Send response contained no messages")
            for payload in candidates:
                if payload.client_msg_id == dto.client_msg_id:
                    return payload
            same_content = [p for p in candidates if p.content == dto.content]
            return max(same_content or candidates, key=lambda p: p.created_at)

        raw = body.get("message", body) if isinstance(body, dict) else body
        return self._parse(TypeAdapter(MessagePayload), raw, "send response")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[TransportError] = TransportError,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise error_cls(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise error_cls(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            raise error_cls(
                f"{method} {path} returned {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise error_cls(f"{method} {path} returned a non-JSON body") from exc

    @staticmethod
    def _parse(
        adapter: TypeAdapter[Any],
        data: Any,
        what: str,
        error_cls: type[TransportError] = TransportError,
    ) -> Any:
        try:
            return adapter.validate_python(data)
        except PydanticValidationError as exc:
            logger.debug("Malformed %s: %s", what, exc)
            raise error_cls(f"Malformed {what}") from exc
