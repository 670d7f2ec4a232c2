from urlshortener.shortener.client import (
    ShortenedUrl,
    ShortenerApiError,
    ShortenerClient,
    ShortenerClientConfig,
)
from urlshortener.shortener.service import ShortenOutcome, ShortenService, build_service

__all__ = [
    "ShortenOutcome",
    "ShortenService",
    "ShortenedUrl",
    "ShortenerApiError",
    "ShortenerClient",
    "ShortenerClientConfig",
    "build_service",
]
