# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Records found in a pacman repository database.

``Package`` is decoded from ``<name>-<version>/desc`` members of
``<repo>.db.tar.*``; ``PackageFiles`` from ``<name>-<version>/files`` members
of ``<repo>.files.tar.*``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .desc import desc_field, register_converter
from .exceptions import DependencyParseError


class DependencyConstraint(Enum):
    LESS_THAN = "<"
    MORE_THAN = ">"
    EQUALS = "="
    MORE_OR_EQUALS = ">="
    LESS_OR_EQUALS = "<="

    def __str__(self):
        return self.value


# two-character operators first so ">=" is not read as ">"
_CONSTRAINTS_BY_LENGTH = sorted(DependencyConstraint, key=lambda c: -len(c.value))


@dataclass(frozen=True)
class DependencyVersion:
    constraint: DependencyConstraint
    version: str

    @classmethod
    def parse(cls, text: str) -> DependencyVersion:
        """
        Parse ``>=1.0``, ``<2``, ``=3.1-1`` and so on.
        """
        for constraint in _CONSTRAINTS_BY_LENGTH:
            if text.startswith(constraint.value):
                version = text[len(constraint.value) :]
                if not version:
                    raise DependencyParseError(f"Version not found in {text!r}")
                return cls(constraint, version)
        raise DependencyParseError(f"Constraint not found in {text!r}")

    def __str__(self):
        return f"{self.constraint}{self.version}"


@dataclass(frozen=True)
class Dependency:
    """
    A dependency as written in DEPENDS, OPTDEPENDS and friends.

    ``version`` is None when any version satisfies the dependency.
    ``description`` holds the reason given by optional dependencies
    (``python-foo: for bar support``).
    """

    name: str
    version: DependencyVersion | None = None
    description: str | None = None

    @classmethod
    def parse(cls, text: str) -> Dependency:
        spec, sep, description = text.partition(": ")
        position = next((i for i, char in enumerate(spec) if char in "<>="), None)
        if position is None:
            name, version = spec, None
        else:
            name, version = spec[:position], DependencyVersion.parse(spec[position:])
        if not name:
            raise DependencyParseError(f"Dependency name not found in {text!r}")
        return cls(name, version, description if sep else None)

    def __str__(self):
        text = self.name
        if self.version is not None:
            text += str(self.version)
        if self.description is not None:
            text += f": {self.description}"
        return text


register_converter(Dependency, Dependency.parse, str)


@dataclass(frozen=True, kw_only=True)
class Package:
    """
    Repository package

    ``linked_sources`` is filled in by the repository index: a package
    ``foo`` lists the VCS builds (``foo-git``, ``foo-svn``, ...) found next to
    it. It is not part of the description.
    """

    file_name: str = desc_field("FILENAME")
    name: str = desc_field("NAME")
    # name of the PKGBUILD this package was built from
    base: str | None = desc_field("BASE", default=None)
    version: str = desc_field("VERSION")
    description: str | None = desc_field("DESC", default=None)
    groups: list[str] = desc_field("GROUPS", default_factory=list)
    compressed_size: int = desc_field("CSIZE")
    installed_size: int = desc_field("ISIZE")
    md5_sum: str | None = desc_field("MD5SUM", default=None)
    sha256_sum: str = desc_field("SHA256SUM")
    pgp_signature: str | None = desc_field("PGPSIG", default=None)
    home_url: str | None = desc_field("URL", default=None)
    license: list[str] = desc_field("LICENSE", default_factory=list)
    architecture: str = desc_field("ARCH")
    build_date: datetime = desc_field("BUILDDATE")
    packager: str = desc_field("PACKAGER")
    replaces: list[str] = desc_field("REPLACES", default_factory=list)
    conflicts: list[str] = desc_field("CONFLICTS", default_factory=list)
    provides: list[str] = desc_field("PROVIDES", default_factory=list)
    depends: list[Dependency] = desc_field("DEPENDS", default_factory=list)
    optdepends: list[Dependency] = desc_field("OPTDEPENDS", default_factory=list)
    makedepends: list[Dependency] = desc_field("MAKEDEPENDS", default_factory=list)
    checkdepends: list[Dependency] = desc_field("CHECKDEPENDS", default_factory=list)
    linked_sources: tuple[Package, ...] = desc_field(
        skip=True, default=(), compare=False, repr=False
    )

    @property
    def name_and_version(self) -> str:
        """``<name>-<version>``, the directory name of this package in the database."""
        return f"{self.name}-{self.version}"


@dataclass
class PackageFiles:
    files: list[str] = desc_field("FILES", default_factory=list)
