# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Download repository databases.

``fetch_archive()`` uses a requests session; ``fetch_archive_async()`` uses an
``httpx.AsyncClient``. Both return the raw (still compressed) archive bytes,
and report download progress through an optional ``(bytes_read, total)``
callback. With an ``ArchiveCache`` they send conditional requests and reuse
the cached copy on ``304 Not Modified``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import httpx
import requests

from . import __version__
from .cache import CachedArchive
from .config import get_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .cache import ArchiveCache
    from .config import Settings

    ChunkCallback = Callable[[int, "int | None"], None]

log = logging.getLogger(__name__)

CHUNK_SIZE = 2**16
USER_AGENT = f"archlinux-repo/{__version__}"


class Stage(Enum):
    LOADING_DB = "loading_db"
    LOADING_DB_CHUNK = "loading_db_chunk"
    READING_DB_FILE = "reading_db_file"
    READING_DB_DONE = "reading_db_done"
    LOADING_FILES_METADATA = "loading_files_metadata"
    LOADING_FILES_METADATA_CHUNK = "loading_files_metadata_chunk"
    READING_FILES_METADATA_FILE = "reading_files_metadata_file"
    READING_FILES_DONE = "reading_files_done"


@dataclass(frozen=True)
class Progress:
    """
    Loading progress, passed to the ``progress`` callback of the loaders.

    ``current`` and ``total`` are byte counts for the ``*_CHUNK`` stages
    (``total`` is None without a Content-Length); ``path`` is the archive
    member for the ``*_FILE`` stages.
    """

    stage: Stage
    current: int | None = None
    total: int | None = None
    path: str | None = None

    def __str__(self):
        if self.stage is Stage.LOADING_DB:
            return "Loading repository database"
        if self.stage is Stage.LOADING_DB_CHUNK:
            if self.total is not None:
                return f"Loading repository: {self.current} of {self.total} bytes"
            return f"Loading repository: {self.current} bytes"
        if self.stage is Stage.READING_DB_FILE:
            return f"Loading repository file: {self.path}"
        if self.stage is Stage.READING_DB_DONE:
            return "Database loaded"
        if self.stage is Stage.LOADING_FILES_METADATA:
            return "Loading files metadata"
        if self.stage is Stage.LOADING_FILES_METADATA_CHUNK:
            if self.total is not None:
                return f"Loading files metadata: {self.current} of {self.total} bytes"
            return f"Loading files metadata: {self.current} bytes"
        if self.stage is Stage.READING_FILES_METADATA_FILE:
            return f"Loading files metadata file: {self.path}"
        return "Files metadata loaded"


def database_url(base_url: str, name: str, kind: str = "db", extension: str = ".tar.gz") -> str:
    """
    Return the URL of ``<name>.<kind><extension>`` under base_url, e.g.
    ``https://mirror/core/os/x86_64/core.db.tar.gz``.
    """
    return f"{base_url.rstrip('/')}/{name}.{kind}{extension}"


def _conditional_headers(cached: CachedArchive | None) -> dict[str, str]:
    headers = {"User-Agent": USER_AGENT}
    if cached:
        if cached.etag:
            headers["If-None-Match"] = cached.etag
        if cached.last_modified:
            headers["If-Modified-Since"] = cached.last_modified
    return headers


def _content_length(headers: Mapping[str, str]) -> int | None:
    try:
        return int(headers["Content-Length"])
    except (KeyError, ValueError):
        return None


def _save(cache: ArchiveCache | None, url: str, data: bytes, headers: Mapping[str, str]):
    if cache is None:
        return
    cache.insert(
        CachedArchive(
            url=url,
            data=data,
            etag=headers.get("ETag", ""),
            last_modified=headers.get("Last-Modified", ""),
        )
    )


def fetch_archive(
    url: str,
    *,
    session: requests.Session | None = None,
    progress: ChunkCallback | None = None,
    cache: ArchiveCache | None = None,
    settings: Settings | None = None,
) -> bytes:
    """
    Download url and return its body.

    Raise requests.HTTPError on 4xx and 5xx responses.
    """
    settings = settings or get_settings()
    cached = cache.retrieve(url) if cache else None

    with contextlib.ExitStack() as stack:
        if session is None:
            session = stack.enter_context(requests.Session())
        log.debug("GET %s", url)
        response: requests.Response = stack.enter_context(
            session.get(
                url,
                headers=_conditional_headers(cached),
                timeout=settings.timeout,
                stream=True,
            )
        )
        if response.status_code == 304 and cached:
            log.debug("%s not modified, using cached copy", url)
            return cached.data
        response.raise_for_status()

        total = _content_length(response.headers)
        buffer = bytearray()
        for chunk in response.iter_content(CHUNK_SIZE):
            buffer += chunk
            if progress:
                progress(len(buffer), total)

    data = bytes(buffer)
    log.debug("Fetched %s (%d bytes)", url, len(data))
    _save(cache, url, data, response.headers)
    return data


async def fetch_archive_async(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    progress: ChunkCallback | None = None,
    cache: ArchiveCache | None = None,
    settings: Settings | None = None,
) -> bytes:
    """
    Download url with httpx and return its body.

    Raise httpx.HTTPStatusError on 4xx and 5xx responses.
    """
    settings = settings or get_settings()
    loop = asyncio.get_running_loop()
    cached = await loop.run_in_executor(None, cache.retrieve, url) if cache else None

    async with contextlib.AsyncExitStack() as stack:
        if client is None:
            client = await stack.enter_async_context(
                httpx.AsyncClient(
                    timeout=httpx.Timeout(settings.read_timeout, connect=settings.connect_timeout),
                    follow_redirects=True,
                )
            )
        log.debug("GET %s", url)
        response = await stack.enter_async_context(
            client.stream("GET", url, headers=_conditional_headers(cached))
        )
        # httpx treats every 3xx as an error status
        if response.status_code == 304 and cached:
            log.debug("%s not modified, using cached copy", url)
            return cached.data
        response.raise_for_status()

        total = _content_length(response.headers)
        buffer = bytearray()
        async for chunk in response.aiter_bytes(CHUNK_SIZE):
            buffer += chunk
            if progress:
                progress(len(buffer), total)

    data = bytes(buffer)
    log.debug("Fetched %s (%d bytes)", url, len(data))
    await loop.run_in_executor(None, _save, cache, url, data, response.headers)
    return data
