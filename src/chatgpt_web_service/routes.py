"""HTTP route handlers for the relay server."""

from pathlib import Path

import structlog
from aiohttp import web
from aiohttp.web import Application, FileResponse, Request, Response, StreamResponse
from pydantic import ValidationError

from chatgpt_web_service.auth.middleware import API_PREFIX
from chatgpt_web_service.chatgpt.client import ChatGPTClient
from chatgpt_web_service.chatgpt.errors import FALLBACK_ERROR_MESSAGE, StreamAborted
from chatgpt_web_service.chatgpt.models import (
    ChatMessage,
    ChatProcessRequest,
    ResponseEnvelope,
    error_chunk,
    ok_chunk,
    send_response,
    wire_dumps,
)
from chatgpt_web_service.config import Settings

logger = structlog.get_logger()

INVALID_REQUEST_MESSAGE = "Invalid request body: a string prompt is required"
EMPTY_SECRET_MESSAGE = "Secret key is empty"
INVALID_SECRET_MESSAGE = "密钥无效 | Secret key is invalid"


def envelope_response(envelope: ResponseEnvelope) -> Response:
    return web.json_response(envelope.to_wire(), dumps=wire_dumps)


class ChunkWriter:
    """Writes newline-separated JSON lines to a streamed response."""

    def __init__(self, response: StreamResponse) -> None:
        self._response = response
        self.count = 0

    async def write(self, payload: dict) -> None:
        line = wire_dumps(payload)
        data = line if self.count == 0 else f"\n{line}"
        try:
            await self._response.write(data.encode("utf-8"))
        except ConnectionResetError as error:
            raise StreamAborted() from error
        self.count += 1


async def chat_process(request: Request) -> StreamResponse:
    """Stream partial replies as `{"ok": ...}` / `{"error": ...}` lines."""
    client: ChatGPTClient = request.app["chatgpt"]

    response = StreamResponse(headers={"Content-Type": "application/octet-stream"})
    await response.prepare(request)
    writer = ChunkWriter(response)

    async def on_partial(chat: ChatMessage) -> None:
        await writer.write(ok_chunk(chat))

    try:
        try:
            body = ChatProcessRequest.model_validate(await request.json())
        except (ValueError, ValidationError):
            logger.warning("chat_process_invalid_request", path=request.path)
            await writer.write(error_chunk(INVALID_REQUEST_MESSAGE))
        else:
            logger.info("chat_process_start", prompt_length=len(body.prompt))
            result = await client.chat_reply_process(body.prompt, body.options, on_partial)
            if result.status != "Success":
                await writer.write(error_chunk(result.message))
            elif writer.count == 0 and result.data is not None:
                await writer.write(ok_chunk(result.data))
            logger.info(
                "chat_process_complete",
                status=result.status,
                chunk_count=writer.count,
            )
    except StreamAborted:
        logger.info("client_disconnected", path=request.path, chunk_count=writer.count)
        return response
    except Exception as error:
        logger.error("chat_process_error", path=request.path, exc_info=True)
        try:
            await writer.write(error_chunk(str(error) or FALLBACK_ERROR_MESSAGE))
        except StreamAborted:
            return response

    await response.write_eof()
    return response


async def config(request: Request) -> Response:
    client: ChatGPTClient = request.app["chatgpt"]
    try:
        envelope = await client.chat_config()
    except Exception as error:
        logger.error("config_error", exc_info=True)
        envelope = send_response("Fail", str(error))
    return envelope_response(envelope)


async def session(request: Request) -> Response:
    """Tell the client whether auth is on and which upstream is active."""
    settings: Settings = request.app["settings"]
    client: ChatGPTClient = request.app["chatgpt"]
    try:
        data = {"auth": settings.has_auth, "model": client.current_model()}
        envelope = send_response("Success", data=data)
    except Exception as error:
        logger.error("session_error", exc_info=True)
        envelope = send_response("Fail", str(error))
    return envelope_response(envelope)


async def verify(request: Request) -> Response:
    settings: Settings = request.app["settings"]
    try:
        body = await request.json()
    except ValueError:
        body = {}
    token = body.get("token") if isinstance(body, dict) else None

    if not token:
        envelope = send_response("Fail", EMPTY_SECRET_MESSAGE)
    elif token != settings.auth_secret_key:
        logger.info("verify_rejected")
        envelope = send_response("Fail", INVALID_SECRET_MESSAGE)
    else:
        envelope = send_response("Success", "Verify successfully")
    return envelope_response(envelope)


async def health(request: Request) -> Response:
    """Health check endpoint - no authentication required."""
    return web.json_response({"status": "healthy"})


def setup_routes(app: Application, static_dir: str) -> None:
    """Mount the relay routes at both / and /api, plus the web front-end."""
    for prefix in ("", API_PREFIX):
        app.router.add_post(f"{prefix}/chat-process", chat_process)
        app.router.add_post(f"{prefix}/config", config)
        app.router.add_post(f"{prefix}/session", session)
        app.router.add_post(f"{prefix}/verify", verify)
    app.router.add_get("/health", health)

    static_path = Path(static_dir)
    if not static_path.is_dir():
        logger.warning("static_dir_missing", path=str(static_path))
        return

    async def index(request: Request) -> StreamResponse:
        index_file = static_path / "index.html"
        if not index_file.is_file():
            raise web.HTTPNotFound()
        return FileResponse(index_file)

    app.router.add_get("/", index)
    app.router.add_static("/", static_path)
