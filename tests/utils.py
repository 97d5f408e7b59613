# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import io
import tarfile
from datetime import datetime, timezone

import zstandard

from archlinux_repo import Dependency, Package, PackageFiles, dumps

# the ag package from msys2's mingw64 repository
SAMPLE_DESC = """\
%FILENAME%
mingw-w64-x86_64-ag-2.2.0-1-any.pkg.tar.xz

%NAME%
mingw-w64-x86_64-ag

%BASE%
mingw-w64-ag

%VERSION%
2.2.0-1

%DESC%
The Silver Searcher: An attempt to make something better than ack, which itself is better than grep (mingw-w64)

%CSIZE%
79428

%ISIZE%
145408

%MD5SUM%
3368b34f1506e7fd84185901dfd5ac2f

%SHA256SUM%
c2b39a45ddd3983f3f4d7f6df34935999454a4bff345d88c8c6e66c81a2f6d7e

%PGPSIG%
iHUEABEIAB0WIQStNRxQrghXdetZMztfku/BpH1FoQUCXQOnfgAKCRBfku/BpH1FoZzhAQCEjnsM18ZCqJHhEE0BwXVsH9ONj87w0Wt8W77ZElUcKwD/RcnlD4Ef7gmOdl+puSDMUNylHQ2wlOdumaVSkQlOhLw=

%URL%
https://geoff.greer.fm/ag

%LICENSE%
Apache

%ARCH%
any

%BUILDDATE%
1560520506

%PACKAGER%
Alexey Pavlov <alexpux@gmail.com>

%DEPENDS%
mingw-w64-x86_64-pcre
mingw-w64-x86_64-xz
mingw-w64-x86_64-zlib

%MAKEDEPENDS%
mingw-w64-x86_64-gcc
mingw-w64-x86_64-pkg-config

"""


def make_package(name: str = "foo", version: str = "1.0-1", **kwargs) -> Package:
    fields = {
        "file_name": f"{name}-{version}-x86_64.pkg.tar.zst",
        "name": name,
        "version": version,
        "compressed_size": 1024,
        "installed_size": 4096,
        "sha256_sum": "0" * 64,
        "architecture": "x86_64",
        "build_date": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        "packager": "Arch Packager <packager@example.org>",
    }
    fields.update(kwargs)
    return Package(**fields)


def desc_entry(package: Package, path: str | None = None) -> tuple[str, bytes]:
    path = path or f"{package.name_and_version}/desc"
    return path, dumps(package).encode()


def files_entry(package: Package, files: list[str]) -> tuple[str, bytes]:
    return f"{package.name_and_version}/files", dumps(PackageFiles(files=files)).encode()


def make_archive(members: list[tuple[str, bytes]], compression: str = "gz") -> bytes:
    """
    Return a tar archive holding members, with a directory entry for each
    member's parent like repo-add writes them.

    compression: "gz", "bz2", "xz", "zst" or "" for none.
    """
    raw = io.BytesIO()
    mode = "w:" if compression in ("", "zst") else f"w:{compression}"
    with tarfile.open(fileobj=raw, mode=mode) as tar:
        directories = set()
        for path, data in members:
            directory = path.rsplit("/", 1)[0]
            if directory not in directories:
                directories.add(directory)
                info = tarfile.TarInfo(directory)
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            info = tarfile.TarInfo(path)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    data = raw.getvalue()
    if compression == "zst":
        # no content size, as written by a streaming compressor
        compressor = zstandard.ZstdCompressor(write_content_size=False)
        data = compressor.compress(data)
    return data


def sample_packages() -> list[Package]:
    return [
        make_package("foo", "1.0-1", base="foo", depends=[Dependency.parse("glibc>=2.33")]),
        make_package("foo-docs", "1.0-1", base="foo", description="Documentation for foo"),
        make_package("glibc", "2.39-1", description="GNU C Library"),
        make_package(
            "bar",
            "2:3.1-2",
            depends=[Dependency.parse("foo"), Dependency.parse("glibc")],
            optdepends=[Dependency.parse("python: for the bar-python script")],
        ),
    ]
