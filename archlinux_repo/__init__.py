# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
try:
    from ._version import version as __version__
except ImportError:
    try:
        from importlib.metadata import version

        __version__ = version("archlinux-repo")
        del version
    except ImportError:
        __version__ = "0.0.0.unknown"

from .desc import desc_field, dump, dumps, load, loads, register_converter
from .exceptions import (
    ArchiveError,
    ArchRepoError,
    ArityMismatchError,
    DependencyParseError,
    DescError,
    EntryDecodeError,
    InvalidValueError,
    MalformedBlockError,
    MissingFieldError,
    UnexpectedKeyError,
)
from .models import Dependency, DependencyConstraint, DependencyVersion, Package, PackageFiles
from .repository import Repository, build_repository, load_repository, load_repository_async

__all__ = [
    "ArchRepoError",
    "ArchiveError",
    "ArityMismatchError",
    "Dependency",
    "DependencyConstraint",
    "DependencyParseError",
    "DependencyVersion",
    "DescError",
    "EntryDecodeError",
    "InvalidValueError",
    "MalformedBlockError",
    "MissingFieldError",
    "Package",
    "PackageFiles",
    "Repository",
    "UnexpectedKeyError",
    "build_repository",
    "desc_field",
    "dump",
    "dumps",
    "load",
    "load_repository",
    "load_repository_async",
    "loads",
    "register_converter",
]
