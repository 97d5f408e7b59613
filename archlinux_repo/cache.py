# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Cache for downloaded repository databases, keyed by URL. Rows keep the HTTP
validators so the next download can be a conditional request.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

log = logging.getLogger(__name__)

ARCHIVE_CACHE_NAME = "archives.db"


@dataclass
class CachedArchive:
    url: str
    data: bytes
    etag: str = ""
    last_modified: str = ""

    def __post_init__(self):
        # prevent easy mistake of passing a path or package name
        assert "://" in self.url


def connect(dburi="cache.db"):
    """
    Get database connection.

    dburi: uri-style sqlite database filename; accepts certain ?= parameters.
    """
    # the async loaders call in from executor threads, one call at a time
    conn = sqlite3.connect(dburi, uri=True, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


class ArchiveCache:
    """
    Handle caching for whole repository database archives.
    """

    def __init__(self, base: Path):
        """
        base: directory holding the cache database; created if missing.
        """
        self.base = base
        self.connect()

    def copy(self):
        """
        Copy cache with new connection. Useful for threads.
        """
        return ArchiveCache(self.base)

    def connect(self):
        self.base.mkdir(parents=True, exist_ok=True)
        dburi = (self.base / ARCHIVE_CACHE_NAME).as_uri()
        self.conn = connect(dburi)
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS archives ("
            "url TEXT PRIMARY KEY, etag TEXT, last_modified TEXT, data BLOB, "
            "timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        )

    def insert(self, archive: CachedArchive):
        """
        Store or replace the cached copy of archive.url.
        """
        with self.conn as c:
            c.execute(
                "INSERT OR REPLACE INTO archives (url, etag, last_modified, data) "
                "VALUES (?, ?, ?, ?)",
                (archive.url, archive.etag, archive.last_modified, archive.data),
            )
        log.debug("Cached %s (%d bytes)", archive.url, len(archive.data))

    def retrieve(self, url: str) -> CachedArchive | None:
        with self.conn as c:
            row = c.execute(
                "SELECT url, etag, last_modified, data FROM archives WHERE url = ?", (url,)
            ).fetchone()
        if row is None:
            return None
        return CachedArchive(
            url=row["url"],
            data=bytes(row["data"]),
            etag=row["etag"] or "",
            last_modified=row["last_modified"] or "",
        )

    def close(self):
        self.conn.close()

    def clear_cache(self):
        """
        Truncate the database by removing all rows from tables
        """
        with self.conn as c:
            c.execute("DELETE FROM archives")

    def remove_cache(self):
        """
        Remove the cache database.
        """
        self.close()
        (self.base / ARCHIVE_CACHE_NAME).unlink(missing_ok=True)
