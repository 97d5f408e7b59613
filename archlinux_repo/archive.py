# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Read members out of a repository database archive.

pacman databases are tar archives, compressed with gzip by default and with
zstd, xz or bzip2 by some repositories. ``tarfile`` handles everything except
zstd, which goes through ``zstandard``.
"""

from __future__ import annotations

import io
import logging
import tarfile
from typing import TYPE_CHECKING

import zstandard

from .exceptions import ArchiveError

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

DESC_SUFFIX = "/desc"
FILES_SUFFIX = "/files"


def _open_tar(data: bytes) -> tarfile.TarFile:
    if data.startswith(ZSTD_MAGIC):
        # repo-add does not write a content size header when streaming
        with zstandard.ZstdDecompressor().stream_reader(io.BytesIO(data)) as reader:
            data = reader.read()
        return tarfile.open(fileobj=io.BytesIO(data), mode="r:")
    return tarfile.open(fileobj=io.BytesIO(data), mode="r:*")


def iter_archive_entries(data: bytes, suffix: str = DESC_SUFFIX) -> Iterator[tuple[str, bytes]]:
    """
    Yield (path, contents) for every regular member whose path ends with
    ``suffix``, in archive order.

    Raise ArchiveError if ``data`` is not a readable (compressed) tar archive.
    """
    try:
        with _open_tar(data) as tar:
            for member in tar:
                if not member.isfile() or not member.name.endswith(suffix):
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                with extracted:
                    log.debug("Reading %s (%d bytes)", member.name, member.size)
                    yield member.name, extracted.read()
    except (tarfile.TarError, zstandard.ZstdError, EOFError, OSError) as e:
        raise ArchiveError(f"Could not read repository archive: {e}") from e
