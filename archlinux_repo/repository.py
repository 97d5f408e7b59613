# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
In-memory index of a pacman repository.

``build_repository()`` turns ``(path, bytes)`` archive members into a
``Repository``; ``load_repository()`` and ``load_repository_async()`` also
download and unpack the database first.

## Example

```
from archlinux_repo import load_repository

repo = load_repository("mingw64", "https://repo.msys2.org/mingw/x86_64")
gtk = repo["mingw-w64-x86_64-gtk3"]
for package in repo:
    print(package.name)
```

Packages are keyed by their NAME. When a name shows up more than once, the
last description wins and takes the later position in iteration order.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import dataclasses
import fnmatch
import functools
import logging
import posixpath
from types import MappingProxyType
from typing import TYPE_CHECKING

from . import desc
from .archive import DESC_SUFFIX, FILES_SUFFIX, iter_archive_entries
from .cache import ArchiveCache
from .config import get_settings
from .exceptions import DescError, EntryDecodeError
from .fetch import Progress, Stage, database_url, fetch_archive, fetch_archive_async
from .models import Package, PackageFiles

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping
    from typing import TypeVar

    import httpx
    import requests

    from .config import Settings

    R = TypeVar("R")
    Entry = tuple[str, bytes]
    ProgressCallback = Callable[[Progress], None]

log = logging.getLogger(__name__)

# name suffixes of packages built from a version control checkout
VCS_SUFFIXES = ("-cvs", "-svn", "-hg", "-darcs", "-bzr", "-git")


def _link_vcs_packages(by_name: dict[str, Package]):
    """
    Attach every VCS build (``foo-git``, ``foo-svn``, ...) to the
    ``linked_sources`` of ``foo``.

    ``foo`` is replaced in place. If the repository has no ``foo``, one is
    made from the VCS package under the plain name and added at the end.
    """
    for package in list(by_name.values()):
        suffix = next((s for s in VCS_SUFFIXES if package.name.endswith(s)), None)
        plain_name = package.name[: -len(suffix)] if suffix else ""
        if not plain_name:
            continue
        plain = by_name.get(plain_name)
        if plain is None:
            log.debug("Adding %s for VCS package %s", plain_name, package.name)
            plain = dataclasses.replace(package, name=plain_name, linked_sources=())
        by_name[plain_name] = dataclasses.replace(
            plain, linked_sources=(*plain.linked_sources, package)
        )


class Repository:
    """
    Read-only collection of packages, keyed by package name.

    Not meant to be created directly; use ``build_repository()`` or one of the
    loaders.
    """

    def __init__(
        self,
        packages: Iterable[Package] = (),
        files: Mapping[str, list[str]] | None = None,
        *,
        name: str = "",
        url: str = "",
    ):
        """
        packages: decoded packages in archive order.
        files: file lists keyed by ``<name>-<version>``, or None if the files
            database was not loaded.
        """
        self.name = name
        self.url = url
        self.files_metadata = files is not None

        by_name: dict[str, Package] = {}
        for package in packages:
            # re-inserting moves a replaced package to its latest position
            by_name.pop(package.name, None)
            by_name[package.name] = package
        _link_vcs_packages(by_name)

        by_base: dict[str, Package] = {}
        by_name_and_version: dict[str, Package] = {}
        for package in by_name.values():
            if package.base is not None:
                if package.base in by_base:
                    log.debug(
                        "Found package %s with already registered base name %s, ignoring",
                        package.name,
                        package.base,
                    )
                else:
                    by_base[package.base] = package
            by_name_and_version[package.name_and_version] = package

        by_name_files: dict[str, list[str]] = {}
        for name_and_version, file_list in (files or {}).items():
            package = by_name_and_version.get(name_and_version)
            if package is None:
                log.warning("Files metadata for unknown package %s, ignoring", name_and_version)
                continue
            by_name_files[package.name] = file_list

        self._packages = MappingProxyType(by_name)
        self._by_base = MappingProxyType(by_base)
        self._by_name_and_version = MappingProxyType(by_name_and_version)
        self._files = MappingProxyType(by_name_files)

    def __repr__(self):
        left, right = super().__repr__().split(maxsplit=1)
        return f"{left} {self.name or '?'} ({len(self)} packages) {right}"

    @property
    def packages(self) -> Mapping[str, Package]:
        return self._packages

    def get(self, name: str) -> Package | None:
        """
        Return the package called ``name``, or None.
        """
        return self._packages.get(name)

    def get_by_base(self, base: str) -> Package | None:
        """
        Return the first package built from PKGBUILD ``base``, or None. Not
        all packages declare a base.
        """
        return self._by_base.get(base)

    def get_by_name_and_version(self, name_and_version: str) -> Package | None:
        """
        Return the package matching ``<name>-<version>``, e.g.
        ``mingw-w64-x86_64-gtk3-3.24.9-4``, or None.
        """
        return self._by_name_and_version.get(name_and_version)

    def __getitem__(self, key: str) -> Package:
        """
        Look up by base name, then by name, then by ``<name>-<version>``.

        Raise KeyError if nothing matches.
        """
        for lookup in (self.get_by_base, self.get, self.get_by_name_and_version):
            package = lookup(key)
            if package is not None:
                return package
        raise KeyError(key)

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __iter__(self) -> Iterator[Package]:
        return iter(self._packages.values())

    def __len__(self) -> int:
        return len(self._packages)

    def files(self, name: str) -> list[str] | None:
        """
        Return the files installed by package ``name``.

        Always None unless the repository was loaded with files metadata.
        """
        file_list = self._files.get(name)
        return None if file_list is None else list(file_list)

    def search(self, pattern: str) -> list[Package]:
        """
        Return packages whose name matches the shell-style ``pattern``.
        """
        return [package for package in self if fnmatch.fnmatchcase(package.name, pattern)]

    def whoneeds(self, name: str) -> list[Package]:
        """
        Return packages with a run-time dependency on ``name``.
        """
        return [
            package
            for package in self
            if any(dependency.name == name for dependency in package.depends)
        ]

    def package_url(self, key: str) -> str:
        """
        Return the download URL of a package, looked up as in ``repository[key]``.
        """
        if not self.url:
            raise ValueError(f"{self!r} has no URL")
        return f"{self.url.rstrip('/')}/{self[key].file_name}"

    def download_package(
        self,
        key: str,
        *,
        session: requests.Session | None = None,
        settings: Settings | None = None,
    ) -> bytes:
        """
        Download a package file, looked up as in ``repository[key]``.
        """
        return fetch_archive(self.package_url(key), session=session, settings=settings)

    def reload(
        self,
        *,
        progress: ProgressCallback | None = None,
        session: requests.Session | None = None,
        settings: Settings | None = None,
    ) -> Repository:
        """
        Download the database again and return a new Repository.
        """
        return load_repository(
            self.name,
            self.url,
            files_metadata=self.files_metadata,
            progress=progress,
            session=session,
            settings=settings,
        )


def _decode_entry(entry: Entry, record_type: type[R], unknown_keys: str | None) -> R:
    path, data = entry
    try:
        return desc.loads(data, record_type, unknown_keys=unknown_keys)
    except DescError as e:
        raise EntryDecodeError(path, e) from e


def _decode_entries(
    entries: Iterable[Entry],
    record_type: type[R],
    unknown_keys: str | None,
    max_workers: int,
) -> list[tuple[str, R]]:
    """
    Decode all entries, in entry order. The first entry that fails raises.
    """
    entries = list(entries)
    decode = functools.partial(
        _decode_entry, record_type=record_type, unknown_keys=unknown_keys
    )
    paths = [path for path, _ in entries]
    if max_workers <= 1 or len(entries) <= 1:
        return list(zip(paths, map(decode, entries)))
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        # map() yields in submission order, so errors surface in entry order too
        return list(zip(paths, executor.map(decode, entries)))


def build_repository(
    entries: Iterable[Entry],
    *,
    files_entries: Iterable[Entry] | None = None,
    name: str = "",
    url: str = "",
    unknown_keys: str | None = None,
    max_workers: int | None = None,
) -> Repository:
    """
    Build a Repository from ``(path, bytes)`` package descriptions.

    files_entries: ``(path, bytes)`` members of the files database, where
        path is ``<name>-<version>/files``.
    unknown_keys: "ignore" or "error"; defaults to the configured policy.
    max_workers: threads used for decoding; defaults to the configured
        ``decode_threads``.

    Raise EntryDecodeError for the first entry that cannot be decoded.
    """
    if max_workers is None:
        max_workers = get_settings().decode_threads

    decoded = _decode_entries(entries, Package, unknown_keys, max_workers)
    log.debug("Decoded %d package descriptions", len(decoded))

    files = None
    if files_entries is not None:
        files = {
            posixpath.basename(posixpath.dirname(path)): package_files.files
            for path, package_files in _decode_entries(
                files_entries, PackageFiles, unknown_keys, max_workers
            )
        }

    return Repository((package for _, package in decoded), files, name=name, url=url)


def _reading(
    entries: Iterable[Entry], report: ProgressCallback, stage: Stage
) -> Iterator[Entry]:
    for path, data in entries:
        report(Progress(stage, path=path))
        yield path, data


def _noop(progress: Progress):
    pass


def _cache_for(settings: Settings) -> ArchiveCache | None:
    if settings.cache_dir is None:
        return None
    return ArchiveCache(settings.cache_dir)


@contextlib.contextmanager
def _opened_cache(settings: Settings) -> Iterator[ArchiveCache | None]:
    cache = _cache_for(settings)
    try:
        yield cache
    finally:
        if cache is not None:
            cache.close()


def _build_from_archives(
    name: str,
    url: str,
    db_data: bytes,
    files_data: bytes | None,
    report: ProgressCallback,
    settings: Settings,
) -> Repository:
    entries = list(
        _reading(iter_archive_entries(db_data, DESC_SUFFIX), report, Stage.READING_DB_FILE)
    )
    files_entries = None
    if files_data is not None:
        files_entries = list(
            _reading(
                iter_archive_entries(files_data, FILES_SUFFIX),
                report,
                Stage.READING_FILES_METADATA_FILE,
            )
        )
    repository = build_repository(
        entries,
        files_entries=files_entries,
        name=name,
        url=url,
        unknown_keys=settings.unknown_keys,
        max_workers=settings.decode_threads,
    )
    report(Progress(Stage.READING_DB_DONE))
    if files_data is not None:
        report(Progress(Stage.READING_FILES_DONE))
    log.info("Loaded repository %s with %d packages from %s", name, len(repository), url)
    return repository


def load_repository(
    name: str,
    url: str,
    *,
    files_metadata: bool = False,
    progress: ProgressCallback | None = None,
    session: requests.Session | None = None,
    settings: Settings | None = None,
    extension: str = ".tar.gz",
) -> Repository:
    """
    Download ``<url>/<name>.db<extension>`` (and ``<name>.files<extension>``
    if files_metadata) and build a Repository from it.

    Raise requests.HTTPError if a download fails, ArchiveError if an archive
    cannot be read and EntryDecodeError if a description cannot be decoded.
    """
    settings = settings or get_settings()
    report = progress or _noop

    with _opened_cache(settings) as cache:
        report(Progress(Stage.LOADING_DB))
        db_data = fetch_archive(
            database_url(url, name, "db", extension),
            session=session,
            cache=cache,
            settings=settings,
            progress=lambda current, total: report(
                Progress(Stage.LOADING_DB_CHUNK, current, total)
            ),
        )
        files_data = None
        if files_metadata:
            report(Progress(Stage.LOADING_FILES_METADATA))
            files_data = fetch_archive(
                database_url(url, name, "files", extension),
                session=session,
                cache=cache,
                settings=settings,
                progress=lambda current, total: report(
                    Progress(Stage.LOADING_FILES_METADATA_CHUNK, current, total)
                ),
            )
    return _build_from_archives(name, url, db_data, files_data, report, settings)


async def load_repository_async(
    name: str,
    url: str,
    *,
    files_metadata: bool = False,
    progress: ProgressCallback | None = None,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
    extension: str = ".tar.gz",
) -> Repository:
    """
    Like ``load_repository()``, downloading with httpx. Decoding happens after
    all downloads completed, in the event loop's default executor; progress
    for the reading stages is reported from that executor's thread.

    Raise httpx.HTTPStatusError if a download fails.
    """
    settings = settings or get_settings()
    report = progress or _noop
    loop = asyncio.get_running_loop()

    cache = await loop.run_in_executor(None, _cache_for, settings)
    try:
        report(Progress(Stage.LOADING_DB))
        db_data = await fetch_archive_async(
            database_url(url, name, "db", extension),
            client=client,
            cache=cache,
            settings=settings,
            progress=lambda current, total: report(
                Progress(Stage.LOADING_DB_CHUNK, current, total)
            ),
        )
        files_data = None
        if files_metadata:
            report(Progress(Stage.LOADING_FILES_METADATA))
            files_data = await fetch_archive_async(
                database_url(url, name, "files", extension),
                client=client,
                cache=cache,
                settings=settings,
                progress=lambda current, total: report(
                    Progress(Stage.LOADING_FILES_METADATA_CHUNK, current, total)
                ),
            )
    finally:
        if cache is not None:
            await loop.run_in_executor(None, cache.close)
    return await loop.run_in_executor(
        None, _build_from_archives, name, url, db_data, files_data, report, settings
    )
