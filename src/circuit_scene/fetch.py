"""
Byte retrieval for mesh files and kernel binaries.

HTTP(S) goes through ``requests`` with caller-supplied auth headers;
``file://`` URLs are read from disk. The blocking call runs on a worker
thread so the event loop never blocks on I/O.
"""
import asyncio
import re
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import unquote, urlparse

import logging
import requests

from circuit_scene.errors import ResourceFetchError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 60.0
WINDOWS_DRIVE_PATH_RE = re.compile(r"^/[A-Za-z]:")


def fetch_bytes(url: str, headers: Optional[Mapping[str, str]] = None) -> bytes:
    """Fetch *url* and return the body.

    Raises:
        ResourceFetchError: on network failure, non-2xx status or a
            missing local file.
    """
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return _read_file_url(url)

    try:
        resp = requests.get(url, headers=dict(headers or {}), timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        raise ResourceFetchError(f"Request to {url} failed: {e}", url=url) from e

    if not resp.ok:
        raise ResourceFetchError(
            f"HTTP {resp.status_code} {resp.reason} for {url}",
            url=url,
            status_code=resp.status_code,
        )
    return resp.content


async def fetch_bytes_async(url: str, headers: Optional[Mapping[str, str]] = None) -> bytes:
    return await asyncio.to_thread(fetch_bytes, url, headers)


def file_url_to_path(url: str) -> Path:
    path = unquote(urlparse(url).path)
    # "/C:/dir/file" -> "C:/dir/file"
    if WINDOWS_DRIVE_PATH_RE.match(path):
        path = path[1:]
    return Path(path)


def _read_file_url(url: str) -> bytes:
    path = file_url_to_path(url)
    try:
        return path.read_bytes()
    except OSError as e:
        raise ResourceFetchError(f"Cannot read {path}: {e}", url=url) from e
