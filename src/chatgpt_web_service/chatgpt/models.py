"""Data models exchanged between the relay, the browser and the upstream."""

import json
from functools import partial
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# Chinese messages go out unescaped.
wire_dumps = partial(json.dumps, ensure_ascii=False)

ApiModel = Literal["ChatGPTAPI", "ChatGPTUnofficialProxyAPI"]
Status = Literal["Success", "Fail", "Unauthorized"]


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys, as the web client expects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatContext(CamelModel):
    """Correlation ids echoed back by the client on the next turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    conversation_id: str | None = None
    parent_message_id: str | None = None


class ChatMessage(CamelModel):
    """A user prompt or a (partial) assistant reply."""

    id: str
    text: str = ""
    role: Literal["user", "assistant"] = "assistant"
    parent_message_id: str | None = None
    conversation_id: str | None = None
    delta: str | None = None
    detail: dict[str, Any] | None = None


class ChatProcessRequest(BaseModel):
    """Body of POST /chat-process."""

    prompt: str
    options: ChatContext | None = None


class ModelConfig(CamelModel):
    """Snapshot of the runtime configuration reported by /config."""

    api_model: ApiModel
    reverse_proxy: str
    timeout_ms: int
    socks_proxy: str
    https_proxy: str
    balance: str


class ResponseEnvelope(BaseModel, Generic[T]):
    """Normalized `{status, message, data}` wrapper."""

    status: Status
    message: str = ""
    data: T | None = None

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True, exclude={"data"})
        if isinstance(self.data, BaseModel):
            payload["data"] = self.data.model_dump(mode="json", by_alias=True, exclude_none=True)
        else:
            payload["data"] = self.data
        return payload


def send_response(
    status: Status, message: str = "", data: Any = None
) -> ResponseEnvelope:
    return ResponseEnvelope(status=status, message=message, data=data)


def ok_chunk(message: ChatMessage) -> dict[str, Any]:
    """Stream line carrying a partial reply."""
    return {"ok": message.to_wire()}


def error_chunk(message: str) -> dict[str, Any]:
    """Stream line carrying an in-band failure."""
    return {"error": message}
