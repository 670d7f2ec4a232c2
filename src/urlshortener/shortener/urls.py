from __future__ import annotations

import re
from urllib.parse import urljoin

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_url(raw: str) -> str:
    url = (raw or "").strip()
    if not url:
        raise ValueError("url must not be empty")
    if not _SCHEME_RE.match(url):
        url = f"http://{url}"
    return url


def build_resource_url(api_endpoint: str, resource: str = "url") -> str:
    # urljoin drops the last path segment unless the base ends with a slash
    base = api_endpoint if api_endpoint.endswith("/") else api_endpoint + "/"
    return urljoin(base, resource)


def short_link(resource_url: str, code: str) -> str:
    return f"{resource_url}/{code}"
