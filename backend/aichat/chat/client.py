"""Upstream completion client factory (OpenAI-compatible SDK)."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx
from openai import AsyncAzureOpenAI, AsyncOpenAI

from aichat.chat.errors import ConfigError

logger = logging.getLogger(__name__)

TIMEOUT = 180.0  # seconds, per request


def _valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https", "socks5") and bool(parsed.netloc)


def build_client(
    api_key: str,
    api_type: str = "OPEN_AI",
    base_url: str = "",
    proxy: str = "",
    api_version: str = "2024-02-01",
) -> AsyncOpenAI:
    """Build an async SDK client.

    Raises ConfigError for a missing key, an unknown api type, or a malformed
    base/proxy URL. Azure variants require a base URL (the resource endpoint).
    """
    if not api_key:
        raise ConfigError("missed api key")
    if base_url and not _valid_url(base_url):
        raise ConfigError(f"invalid base url: {base_url!r}")
    if proxy and not _valid_url(proxy):
        raise ConfigError(f"invalid proxy: {proxy!r}")

    kind = (api_type or "OPEN_AI").upper()
    if kind not in ("OPEN_AI", "AZURE", "AZURE_AD"):
        raise ConfigError(f"invalid api type: {api_type!r}")
    if kind != "OPEN_AI" and not base_url:
        raise ConfigError("missed base url")

    http_client = httpx.AsyncClient(proxy=proxy or None, timeout=TIMEOUT)

    if kind == "OPEN_AI":
        client: AsyncOpenAI = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or None,
            http_client=http_client,
            max_retries=0,
        )
    elif kind == "AZURE":
        client = AsyncAzureOpenAI(
            api_key=api_key,
            azure_endpoint=base_url,
            api_version=api_version,
            http_client=http_client,
            max_retries=0,
        )
    else:
        client = AsyncAzureOpenAI(
            azure_ad_token=api_key,
            azure_endpoint=base_url,
            api_version=api_version,
            http_client=http_client,
            max_retries=0,
        )

    logger.info("Completion client ready (type=%s, base_url=%s)", kind, base_url or "default")
    return client
