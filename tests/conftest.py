"""Pytest fixtures for chatgpt-web-service tests."""

import os
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from chatgpt_web_service.config import Settings


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing (key mode, no proxies)."""
    env_vars = {
        "OPENAI_API_KEY": "sk-test-key",
        "HOST": "127.0.0.1",
        "PORT": "3002",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=True):
        yield env_vars


@pytest.fixture
def settings(mock_env_vars) -> Settings:
    """Create Settings instance with mocked environment."""
    return Settings(_env_file=None)


def make_settings(**env: str) -> Settings:
    """Build Settings from exactly the given environment variables."""
    with patch.dict(os.environ, env, clear=True):
        return Settings(_env_file=None)


@pytest.fixture
def token_settings() -> Settings:
    """Settings for access-token mode against a reverse proxy."""
    return make_settings(
        OPENAI_ACCESS_TOKEN="session-token",
        API_REVERSE_PROXY="https://proxy.example.com/api/conversation",
    )


def make_raw_chunk(content=None, chunk_id="chatcmpl-1", finish_reason=None):
    """Build a raw OpenAI SDK streaming chunk."""
    delta = SimpleNamespace(content=content, role="assistant" if content else None)
    choice = SimpleNamespace(delta=delta, finish_reason=finish_reason, index=0)
    return SimpleNamespace(id=chunk_id, model="gpt-3.5-turbo", choices=[choice])


def make_mock_stream(chunks):
    """Create an async iterator that yields raw chunks, wrapped in a coroutine."""
    async def _stream():
        for c in chunks:
            yield c

    async def mock_create(*args, **kwargs):
        return _stream()

    return mock_create


def mock_http_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def fail_on_request(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")
