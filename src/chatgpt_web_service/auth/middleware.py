"""Bearer-secret auth and permissive CORS for the relay routes."""

import structlog
from aiohttp import web
from aiohttp.web import Request, StreamResponse

from chatgpt_web_service.chatgpt.models import send_response, wire_dumps
from chatgpt_web_service.config import Settings

logger = structlog.get_logger()

API_PREFIX = "/api"

# /session and /verify stay open so clients can discover and test auth.
PROTECTED_PATHS = frozenset({"/chat-process", "/config"})

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, Content-Type",
    "Access-Control-Allow-Methods": "*",
}

UNAUTHORIZED_MESSAGE = "Error: 无访问权限 | No access rights"


def route_path(path: str) -> str:
    """Strip the /api mount prefix."""
    if path.startswith(API_PREFIX + "/"):
        return path[len(API_PREFIX):]
    return path


def is_authorized(settings: Settings, authorization: str | None) -> bool:
    if not settings.has_auth:
        return True
    if not authorization:
        return False
    token = authorization.replace("Bearer ", "").strip()
    return token == settings.auth_secret_key.strip()


@web.middleware
async def auth_middleware(request: Request, handler) -> StreamResponse:
    settings: Settings = request.app["settings"]
    if route_path(request.path) in PROTECTED_PATHS and not is_authorized(
        settings, request.headers.get("Authorization")
    ):
        logger.warning("auth_rejected", path=request.path, method=request.method)
        envelope = send_response("Unauthorized", UNAUTHORIZED_MESSAGE)
        return web.json_response(envelope.to_wire(), dumps=wire_dumps)
    return await handler(request)


@web.middleware
async def cors_middleware(request: Request, handler) -> StreamResponse:
    """Answer pre-flight requests before auth runs."""
    if request.method == "OPTIONS":
        return web.Response(status=204)
    return await handler(request)


async def add_cors_headers(request: Request, response: StreamResponse) -> None:
    """on_response_prepare hook, so streamed and static responses get headers too."""
    response.headers.update(CORS_HEADERS)
