"""
Thin adapter for the shortening API.

POST <endpoint>/url with {"url": ...} and expect {"code": ..., "original": ...}.
requests is blocking, so each call runs in a worker thread to keep the event
loop free for the breaker's bookkeeping.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Optional

import requests

from urlshortener.shortener.urls import build_resource_url


ENDPOINT_ENV_VAR = "SHORTENER_API_ENDPOINT"


class ShortenerApiError(RuntimeError):
    def __init__(self, status_code: Optional[int], message: str) -> None:
        self.status_code = status_code
        super().__init__(f"Failed to shorten URL: {message}")


@dataclass(frozen=True)
class ShortenedUrl:
    code: str
    original: str


@dataclass(frozen=True)
class ShortenerClientConfig:
    api_endpoint: str
    request_timeout_ms: int = 10_000

    @property
    def resource_url(self) -> str:
        return build_resource_url(self.api_endpoint)

    @staticmethod
    def from_settings(raw: dict) -> "ShortenerClientConfig":
        shortener = raw.get("shortener", {}) or {}
        endpoint = os.getenv(ENDPOINT_ENV_VAR) or str(shortener.get("api_endpoint", ""))
        if not endpoint:
            raise ValueError(
                f"shortener.api_endpoint is not configured and {ENDPOINT_ENV_VAR} is unset"
            )
        return ShortenerClientConfig(
            api_endpoint=endpoint,
            request_timeout_ms=int(shortener.get("request_timeout_ms", 10_000)),
        )


class ShortenerClient:
    def __init__(self, config: ShortenerClientConfig, session: Any = None) -> None:
        self._config = config
        self._session = session

    @property
    def config(self) -> ShortenerClientConfig:
        return self._config

    async def shorten(self, url: str) -> ShortenedUrl:
        return await asyncio.to_thread(self._shorten_sync, url)

    def _shorten_sync(self, url: str) -> ShortenedUrl:
        http = self._session or requests
        timeout_seconds = max(self._config.request_timeout_ms, 1) / 1000
        resp = http.post(
            self._config.resource_url,
            json={"url": url},
            headers={"Content-Type": "application/json"},
            timeout=timeout_seconds,
        )
        if not resp.ok:
            raise ShortenerApiError(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ShortenerApiError(resp.status_code, f"invalid JSON body: {resp.text!r}") from exc
        if not isinstance(data, dict) or "code" not in data:
            raise ShortenerApiError(resp.status_code, f"unexpected response shape: {data!r}")
        return ShortenedUrl(code=str(data["code"]), original=str(data.get("original", url)))
