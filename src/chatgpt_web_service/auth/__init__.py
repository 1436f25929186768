"""Auth module."""

from chatgpt_web_service.auth.middleware import (
    add_cors_headers,
    auth_middleware,
    cors_middleware,
)

__all__ = ["add_cors_headers", "auth_middleware", "cors_middleware"]
