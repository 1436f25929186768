"""Upstream chat client: OpenAI API key mode or ChatGPT access-token mode."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import httpx
import structlog
from openai import AsyncOpenAI

from chatgpt_web_service.chatgpt.errors import (
    ChatGPTError,
    MissingCredentialsError,
    TIMEOUT_MESSAGE,
    StreamAborted,
    normalize_error,
)
from chatgpt_web_service.chatgpt.models import (
    ApiModel,
    ChatContext,
    ChatMessage,
    ModelConfig,
    ResponseEnvelope,
    send_response,
)
from chatgpt_web_service.chatgpt.proxy import (
    build_http_client,
    https_proxy_url,
    socks_proxy_address,
)
from chatgpt_web_service.chatgpt.store import MessageStore
from chatgpt_web_service.config import Settings

logger = structlog.get_logger()

DEFAULT_API_MODEL = "gpt-3.5-turbo"
DEFAULT_API_BASE_URL = "https://api.openai.com"
DEFAULT_REVERSE_PROXY_URL = "https://bypass.churchless.tech/api/conversation"
PROXY_CHAT_MODEL = "text-davinci-002-render-sha"

PartialCallback = Callable[[ChatMessage], Awaitable[None]]

_DONE = object()


@dataclass(frozen=True, slots=True)
class KeyMode:
    """Direct OpenAI chat completions with an API key."""

    api_key: str
    model: str = DEFAULT_API_MODEL
    base_url: str | None = None

    @property
    def api_model(self) -> ApiModel:
        return "ChatGPTAPI"


@dataclass(frozen=True, slots=True)
class AccessTokenMode:
    """ChatGPT session access token against a reverse proxy."""

    access_token: str
    reverse_proxy_url: str = DEFAULT_REVERSE_PROXY_URL

    @property
    def api_model(self) -> ApiModel:
        return "ChatGPTUnofficialProxyAPI"


UpstreamMode = KeyMode | AccessTokenMode


def resolve_mode(settings: Settings) -> UpstreamMode:
    """Select the upstream mode from the configured credentials.

    Raises:
        MissingCredentialsError: neither an API key nor an access token is set.
    """
    if settings.openai_api_key:
        return KeyMode(
            api_key=settings.openai_api_key,
            model=settings.openai_api_model or DEFAULT_API_MODEL,
            base_url=settings.openai_api_base_url or None,
        )
    if settings.openai_access_token:
        return AccessTokenMode(
            access_token=settings.openai_access_token,
            reverse_proxy_url=settings.api_reverse_proxy or DEFAULT_REVERSE_PROXY_URL,
        )
    raise MissingCredentialsError()


def system_message() -> str:
    current_date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return (
        "You are ChatGPT, a large language model trained by OpenAI. "
        "Answer as concisely as possible.\n"
        "Knowledge cutoff: 2021-09-01\n"
        f"Current date: {current_date}"
    )


def _parse_event(line: str) -> Any:
    """Decode one server-sent-event line; None for anything to skip."""
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if payload == "[DONE]":
        return _DONE
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("proxy_event_unparseable", payload=payload[:100])
        return None


def _error_detail(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body
    if isinstance(data, dict) and data.get("detail"):
        detail = data["detail"]
        return detail if isinstance(detail, str) else json.dumps(detail, ensure_ascii=False)
    return body


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
    if close is not None:
        await close()


class ChatGPTClient:
    """Single point of contact with the upstream chat service.

    Built once per process. The mode, HTTP client and OpenAI SDK client
    are fixed at construction; per-request state lives in local variables.
    """

    def __init__(
        self,
        settings: Settings,
        mode: UpstreamMode | None = None,
        http_client: httpx.AsyncClient | None = None,
        store: MessageStore | None = None,
    ) -> None:
        self._settings = settings
        self._mode = mode or resolve_mode(settings)
        self._timeout = settings.timeout_ms / 1000
        self._http = http_client or build_http_client(settings)
        self._store = store or MessageStore(
            ttl=settings.chat_memory_ttl,
            maxsize=settings.chat_memory_maxsize,
        )
        self._max_history = settings.chat_memory_max_messages
        self._openai: AsyncOpenAI | None = None
        if isinstance(self._mode, KeyMode):
            base_url = f"{self._mode.base_url.rstrip('/')}/v1" if self._mode.base_url else None
            self._openai = AsyncOpenAI(
                api_key=self._mode.api_key,
                base_url=base_url,
                timeout=self._timeout,
                http_client=self._http,
            )
        logger.info("chatgpt_client_initialized", api_model=self._mode.api_model)

    @property
    def mode(self) -> UpstreamMode:
        return self._mode

    def current_model(self) -> ApiModel:
        return self._mode.api_model

    async def chat_reply_process(
        self,
        message: str,
        context: ChatContext | None = None,
        on_partial: PartialCallback | None = None,
    ) -> ResponseEnvelope:
        """Send a prompt upstream and relay partial replies.

        Args:
            message: The user's prompt.
            context: Ids from the previous reply, if continuing a conversation.
            on_partial: Awaited for every partial reply, in order.

        Returns:
            Success envelope with the final ChatMessage, or a Fail envelope
            with a normalized message. StreamAborted propagates.
        """
        context = context or ChatContext()
        logger.info(
            "chat_reply_start",
            api_model=self._mode.api_model,
            conversation_id=context.conversation_id,
            parent_message_id=context.parent_message_id,
        )

        try:
            reply = await self._send_message(message, context, on_partial)
        except StreamAborted:
            raise
        except Exception as error:
            logger.error(
                "chat_reply_failed",
                status_code=getattr(error, "status_code", None),
                error=str(error),
                exc_info=True,
            )
            return send_response("Fail", normalize_error(error))

        logger.info(
            "chat_reply_complete",
            message_id=reply.id,
            answer_length=len(reply.text),
        )
        return send_response("Success", data=reply)

    async def _send_message(
        self,
        prompt: str,
        context: ChatContext,
        on_partial: PartialCallback | None,
    ) -> ChatMessage:
        """Run the whole upstream exchange, streaming included, within TIMEOUT_MS."""
        try:
            async with asyncio.timeout(self._timeout):
                if isinstance(self._mode, KeyMode):
                    return await self._send_api_message(prompt, context, on_partial)
                return await self._send_proxy_message(prompt, context, on_partial)
        except TimeoutError as error:
            raise ChatGPTError(TIMEOUT_MESSAGE) from error

    def _build_messages(self, user_message: ChatMessage) -> list[dict[str, str]]:
        history = self._store.history(user_message.parent_message_id, self._max_history)
        return [
            {"role": "system", "content": system_message()},
            *({"role": m.role, "content": m.text} for m in history),
            {"role": "user", "content": user_message.text},
        ]

    async def _send_api_message(
        self,
        prompt: str,
        context: ChatContext,
        on_partial: PartialCallback | None,
    ) -> ChatMessage:
        user_message = ChatMessage(
            id=str(uuid4()),
            role="user",
            text=prompt,
            parent_message_id=context.parent_message_id,
        )
        messages = self._build_messages(user_message)
        model = self._mode.model

        stream = await self._openai.chat.completions.create(
            model=model,
            messages=messages,
            stream=True,
        )

        reply_id = str(uuid4())
        content_parts: list[str] = []
        try:
            async for chunk in stream:
                if chunk.id:
                    reply_id = chunk.id
                for choice in chunk.choices:
                    delta = choice.delta.content
                    if not delta:
                        continue
                    content_parts.append(delta)
                    if on_partial is not None:
                        await on_partial(ChatMessage(
                            id=reply_id,
                            role="assistant",
                            text="".join(content_parts),
                            delta=delta,
                            parent_message_id=user_message.id,
                        ))
        finally:
            await _close_stream(stream)

        reply = ChatMessage(
            id=reply_id,
            role="assistant",
            text="".join(content_parts).strip(),
            parent_message_id=user_message.id,
        )
        self._store.put(user_message)
        self._store.put(reply)
        return reply

    async def _send_proxy_message(
        self,
        prompt: str,
        context: ChatContext,
        on_partial: PartialCallback | None,
    ) -> ChatMessage:
        user_message_id = str(uuid4())
        body: dict[str, Any] = {
            "action": "next",
            "messages": [
                {
                    "id": user_message_id,
                    "role": "user",
                    "content": {"content_type": "text", "parts": [prompt]},
                }
            ],
            "model": PROXY_CHAT_MODEL,
            "parent_message_id": context.parent_message_id or str(uuid4()),
        }
        if context.conversation_id:
            body["conversation_id"] = context.conversation_id

        headers = {
            "Authorization": f"Bearer {self._mode.access_token}",
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
        }

        reply = ChatMessage(
            id=str(uuid4()),
            role="assistant",
            parent_message_id=user_message_id,
            conversation_id=context.conversation_id,
        )

        async with self._http.stream(
            "POST",
            self._mode.reverse_proxy_url,
            json=body,
            headers=headers,
            timeout=self._timeout,
        ) as response:
            if response.status_code >= 400:
                raw = (await response.aread()).decode("utf-8", errors="replace")
                raise ChatGPTError(
                    _error_detail(raw) or response.reason_phrase,
                    status_code=response.status_code,
                )

            async for line in response.aiter_lines():
                event = _parse_event(line)
                if event is _DONE:
                    break
                if not isinstance(event, dict):
                    continue

                message = event.get("message") or {}
                parts = (message.get("content") or {}).get("parts") or []
                text = parts[0] if parts else None
                reply = reply.model_copy(update={
                    "id": message.get("id") or reply.id,
                    "conversation_id": event.get("conversation_id") or reply.conversation_id,
                })
                if not text or not isinstance(text, str):
                    continue

                delta = text[len(reply.text):] if text.startswith(reply.text) else text
                reply = reply.model_copy(update={"text": text, "delta": delta, "detail": event})
                if on_partial is not None:
                    await on_partial(reply)

        return reply.model_copy(update={"delta": None, "detail": None})

    async def fetch_balance(self) -> str:
        """Remaining credit as a 3-decimal string, or "-" when unavailable."""
        api_key = self._settings.openai_api_key
        if not api_key:
            return "-"

        base_url = (self._settings.openai_api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        try:
            response = await self._http.get(
                f"{base_url}/dashboard/billing/credit_grants",
                headers=headers,
            )
            response.raise_for_status()
            balance = float(response.json().get("total_available") or 0)
            return f"{balance:.3f}"
        except Exception:
            logger.warning("balance_fetch_failed", base_url=base_url, exc_info=True)
            return "-"

    async def chat_config(self) -> ResponseEnvelope:
        """Snapshot of the model configuration for the settings panel."""
        settings = self._settings
        balance = await self.fetch_balance()
        config = ModelConfig(
            api_model=self._mode.api_model,
            reverse_proxy=settings.api_reverse_proxy or "-",
            timeout_ms=settings.timeout_ms,
            socks_proxy=socks_proxy_address(settings) or "-",
            https_proxy=https_proxy_url(settings) or "-",
            balance=balance,
        )
        return send_response("Success", data=config)

    async def close(self) -> None:
        if not self._http.is_closed:
            await self._http.aclose()
