"""Outbound proxy selection for upstream HTTP calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import httpx
import structlog

from chatgpt_web_service.config import Settings

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ProxySetup:
    """Proxy chosen for outbound requests."""

    kind: Literal["socks", "https"]
    url: str


def socks_proxy_address(settings: Settings) -> str | None:
    if settings.socks_proxy_host and settings.socks_proxy_port:
        return f"{settings.socks_proxy_host}:{settings.socks_proxy_port}"
    return None


def https_proxy_url(settings: Settings) -> str | None:
    return settings.https_proxy or settings.all_proxy or None


def setup_proxy(settings: Settings) -> ProxySetup | None:
    """Pick the proxy for outbound calls.

    SOCKS wins when both host and port are set; otherwise HTTPS_PROXY,
    then ALL_PROXY; otherwise no proxy.
    """
    socks = socks_proxy_address(settings)
    if socks:
        return ProxySetup(kind="socks", url=f"socks5://{socks}")

    https = https_proxy_url(settings)
    if https:
        return ProxySetup(kind="https", url=https)

    return None


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared AsyncClient routed through the configured proxy."""
    proxy = setup_proxy(settings)
    timeout = settings.timeout_ms / 1000
    if proxy is None:
        logger.info("outbound_proxy_disabled")
        return httpx.AsyncClient(timeout=timeout)

    logger.info("outbound_proxy_enabled", kind=proxy.kind, url=proxy.url)
    return httpx.AsyncClient(timeout=timeout, proxy=proxy.url)
