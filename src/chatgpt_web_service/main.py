"""Application entrypoint - aiohttp relay server for the chat web front-end."""

import logging
import sys

import structlog
from aiohttp.web import Application, run_app

from chatgpt_web_service.auth.middleware import (
    add_cors_headers,
    auth_middleware,
    cors_middleware,
)
from chatgpt_web_service.chatgpt.client import ChatGPTClient, resolve_mode
from chatgpt_web_service.chatgpt.errors import MissingCredentialsError
from chatgpt_web_service.config import Settings, get_settings
from chatgpt_web_service.routes import setup_routes


def redact_secrets(secrets: list[str]):
    """structlog processor that masks configured credentials in event values."""
    secrets = [s for s in secrets if s]

    def processor(logger, method_name, event_dict):
        if not secrets:
            return event_dict
        for key, value in event_dict.items():
            if isinstance(value, str):
                for secret in secrets:
                    value = value.replace(secret, "***")
                event_dict[key] = value
        return event_dict

    return processor


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging.

    Console output is always on. When LOG_FILE is set, JSON lines also go
    to a rotating file. The upstream API key, access token and auth secret
    never reach a handler in clear text.
    """
    from logging.handlers import RotatingFileHandler
    from pathlib import Path

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter("%(message)s")

    root_logger = logging.root
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=settings.log_file,
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_secrets([
                settings.openai_api_key,
                settings.openai_access_token,
                settings.auth_secret_key,
            ]),
            # JSON lines in the file, pretty output on the console
            structlog.processors.JSONRenderer() if settings.log_file else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


async def _close_chatgpt_client(app: Application) -> None:
    client: ChatGPTClient = app["chatgpt"]
    await client.close()


def create_app(
    settings: Settings | None = None,
    chatgpt_client: ChatGPTClient | None = None,
) -> Application:
    """Create and configure the aiohttp application.

    Raises:
        MissingCredentialsError: no upstream credentials are configured.
            Raised before any route is registered.
    """
    settings = settings or get_settings()

    mode = resolve_mode(settings)
    if chatgpt_client is None:
        chatgpt_client = ChatGPTClient(settings, mode=mode)

    app = Application(middlewares=[cors_middleware, auth_middleware])
    app["settings"] = settings
    app["chatgpt"] = chatgpt_client
    app.on_response_prepare.append(add_cors_headers)
    app.on_cleanup.append(_close_chatgpt_client)

    setup_routes(app, settings.static_dir)

    logger.info(
        "relay_app_created",
        api_model=mode.api_model,
        auth_enabled=settings.has_auth,
    )
    return app


def main() -> None:
    """Run the relay server."""
    settings = get_settings()
    configure_logging(settings)

    logger.info(
        "starting_relay_server",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )

    try:
        app = create_app(settings)
    except MissingCredentialsError as e:
        logger.critical("startup_failed", reason=str(e))
        sys.exit(1)

    run_app(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
