# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Exceptions used in archlinux-repo
"""

from __future__ import annotations


class ArchRepoError(Exception):
    """Base class for all errors raised by this package."""


class DescError(ArchRepoError, ValueError):
    """
    A package description could not be decoded.

    ``key`` is the block key involved, ``line`` the 1-based line number of the
    offending header or value line. Either may be None when unknown.
    """

    def __init__(self, message: str, key: str | None = None, line: int | None = None):
        self.key = key
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class MalformedBlockError(DescError):
    """A block header is not delimited by ``%`` or has no value lines."""


class UnexpectedKeyError(DescError):
    """A block key does not correspond to any field of the target record."""


class ArityMismatchError(DescError):
    """A single-valued field got more than one value line."""


class MissingFieldError(ArityMismatchError):
    """A required field never appeared as a block."""

    def __init__(self, key: str):
        super().__init__(f"missing required field %{key}%", key=key)


class InvalidValueError(DescError):
    """A value line could not be coerced to the field's type."""


class DependencyParseError(InvalidValueError):
    """A dependency string has a malformed version constraint."""


class EntryDecodeError(ArchRepoError):
    """
    An archive entry failed to decode. The codec error is available as
    ``__cause__``.
    """

    def __init__(self, entry: str, error: Exception):
        self.entry = entry
        self.error = error
        super().__init__(f"Could not decode {entry}: {error}")


class ArchiveError(ArchRepoError):
    """The repository database archive could not be read."""
