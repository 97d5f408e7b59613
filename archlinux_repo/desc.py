# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Codec for the pacman package description format.

A description is a sequence of blocks, each a ``%KEY%`` header followed by one
or more value lines and terminated by a blank line (or the end of input):

```
%NAME%
ag

%DEPENDS%
pcre
xz

```

Records are dataclasses. The block key of a field defaults to the field name
and can be overridden with ``desc_field("KEY")``. Arity comes from the type
hint: ``list[T]`` takes any number of lines, ``T | None`` may be absent and
anything else is a required single line. Element values go through the
converter table (``str``, ``int``, ``datetime`` and whatever was added with
``register_converter``).

## Example

```
from dataclasses import dataclass
from archlinux_repo.desc import desc_field, dumps, loads

@dataclass
class Test:
    test: str = desc_field("TEST")

text = dumps(Test(test="test"))
assert loads(text, Test) == Test(test="test")
```
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import types
import typing
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, TypeVar

from .config import UNKNOWN_KEY_POLICIES, get_settings
from .exceptions import (
    ArityMismatchError,
    InvalidValueError,
    MalformedBlockError,
    MissingFieldError,
    UnexpectedKeyError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from typing import IO

log = logging.getLogger(__name__)

R = TypeVar("R")

KEY_METADATA = "desc_key"
SKIP_METADATA = "desc_skip"


class Arity(Enum):
    SCALAR = "scalar"
    OPTIONAL = "optional"
    SEQUENCE = "sequence"


class FieldSpec(NamedTuple):
    name: str
    key: str
    arity: Arity
    element_type: type


class Block(NamedTuple):
    key: str
    values: list[str]
    line: int  # 1-based line number of the header


class Converter(NamedTuple):
    parse: Callable[[str], Any]
    format: Callable[[Any], str]


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _format_timestamp(value: datetime) -> str:
    # BUILDDATE holds whole seconds since the epoch
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{value!r} has no timezone")
    if value.microsecond:
        raise ValueError(f"{value!r} has sub-second precision")
    return str(int(value.timestamp()))


_converters: dict[type, Converter] = {
    str: Converter(str, str),
    int: Converter(int, str),
    datetime: Converter(_parse_timestamp, _format_timestamp),
}


def register_converter(
    type_: type, parse: Callable[[str], Any], format: Callable[[Any], str] = str
) -> None:
    """
    Teach the codec to read and write values of ``type_``.

    ``parse`` may raise ValueError; it is reported as InvalidValueError with
    the offending key and line.
    """
    _converters[type_] = Converter(parse, format)


def desc_field(key: str | None = None, *, skip: bool = False, **kwargs):
    """
    dataclasses.field() that binds the field to block ``%key%``.

    skip: keep the field out of descriptions altogether; it is never read
        or written and keeps its default when decoding.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    if key is not None:
        metadata[KEY_METADATA] = key
    if skip:
        metadata[SKIP_METADATA] = True
    return dataclasses.field(metadata=metadata, **kwargs)


def _arity(hint) -> tuple[Arity, Any]:
    origin = typing.get_origin(hint)
    if origin in (typing.Union, types.UnionType):
        args = typing.get_args(hint)
        not_none = [arg for arg in args if arg is not type(None)]
        if len(args) == 2 and len(not_none) == 1:
            return Arity.OPTIONAL, not_none[0]
        raise TypeError(f"Only `T | None` unions are supported, got {hint}")
    if origin is list:
        (element,) = typing.get_args(hint)
        return Arity.SEQUENCE, element
    return Arity.SCALAR, hint


@functools.cache
def record_fields(record_type: type) -> tuple[FieldSpec, ...]:
    """
    Return the (name, key, arity, element type) table for a record type, in
    field declaration order.
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise TypeError(f"{record_type!r} is not a dataclass")
    hints = typing.get_type_hints(record_type)
    specs = []
    keys = set()
    for field in dataclasses.fields(record_type):
        if not field.init or field.metadata.get(SKIP_METADATA):
            continue
        key = field.metadata.get(KEY_METADATA, field.name)
        if not key or "%" in key or "\n" in key:
            raise TypeError(f"{record_type.__name__}.{field.name}: invalid block key {key!r}")
        if key in keys:
            raise TypeError(f"{record_type.__name__}: block key {key!r} used twice")
        keys.add(key)
        arity, element_type = _arity(hints[field.name])
        if element_type not in _converters:
            raise TypeError(
                f"{record_type.__name__}.{field.name}: no converter for {element_type!r}"
            )
        specs.append(FieldSpec(field.name, key, arity, element_type))
    return tuple(specs)


@functools.cache
def _key_table(record_type: type) -> dict[str, FieldSpec]:
    return {spec.key: spec for spec in record_fields(record_type)}


def _parse_header(line: str, lineno: int) -> str:
    if len(line) < 3 or line[0] != "%" or line[-1] != "%" or "%" in line[1:-1]:
        raise MalformedBlockError(f"expected a %KEY% header, got {line!r}", line=lineno)
    return line[1:-1]


def iter_blocks(text: str) -> Iterator[Block]:
    """
    Yield the blocks of a description in input order.

    Value lines are returned verbatim. Any number of blank lines may separate
    blocks.
    """
    lines = text.split("\n")
    i = 0
    while i < len(lines):
        if not lines[i]:
            i += 1
            continue
        header_line = i + 1
        key = _parse_header(lines[i], header_line)
        i += 1
        values = []
        while i < len(lines) and lines[i]:
            values.append(lines[i])
            i += 1
        if not values:
            raise MalformedBlockError(
                f"block %{key}% has no value lines", key=key, line=header_line
            )
        yield Block(key, values, header_line)


def _parse_value(spec: FieldSpec, value: str, lineno: int):
    try:
        return _converters[spec.element_type].parse(value)
    except (ValueError, OverflowError) as e:
        raise InvalidValueError(
            f"invalid value {value!r} for %{spec.key}%: {e}", key=spec.key, line=lineno
        ) from e


def loads(text: str | bytes, record_type: type[R], *, unknown_keys: str | None = None) -> R:
    """
    Decode a description into an instance of ``record_type``.

    unknown_keys: "ignore" to skip blocks with no matching field, "error" to
    raise UnexpectedKeyError. Defaults to the configured policy.
    """
    if unknown_keys is None:
        unknown_keys = get_settings().unknown_keys
    if unknown_keys not in UNKNOWN_KEY_POLICIES:
        raise ValueError(f"unknown_keys must be one of {UNKNOWN_KEY_POLICIES}")
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidValueError(f"description is not valid UTF-8: {e}") from e

    table = _key_table(record_type)
    kwargs: dict[str, Any] = {}
    seen: dict[str, int] = {}
    for block in iter_blocks(text):
        if block.key in seen:
            raise MalformedBlockError(
                f"duplicate block %{block.key}% (first seen on line {seen[block.key]})",
                key=block.key,
                line=block.line,
            )
        seen[block.key] = block.line

        spec = table.get(block.key)
        if spec is None:
            if unknown_keys == "error":
                raise UnexpectedKeyError(
                    f"unexpected block %{block.key}% for {record_type.__name__}",
                    key=block.key,
                    line=block.line,
                )
            log.debug("Ignoring unknown block %%%s%% on line %d", block.key, block.line)
            continue

        if spec.arity is not Arity.SEQUENCE and len(block.values) > 1:
            raise ArityMismatchError(
                f"field %{spec.key}% takes one value, got {len(block.values)}",
                key=spec.key,
                line=block.line + 2,
            )
        values = [
            _parse_value(spec, value, block.line + offset)
            for offset, value in enumerate(block.values, start=1)
        ]
        kwargs[spec.name] = values if spec.arity is Arity.SEQUENCE else values[0]

    for spec in table.values():
        if spec.name in kwargs:
            continue
        if spec.arity is Arity.SCALAR:
            raise MissingFieldError(spec.key)
        kwargs[spec.name] = [] if spec.arity is Arity.SEQUENCE else None

    return record_type(**kwargs)


def _format_value(spec: FieldSpec, value) -> str:
    text = _converters[spec.element_type].format(value)
    if not text or "\n" in text:
        raise ValueError(f"{spec.name}: {text!r} cannot be written as a value line")
    return text


def dumps(record) -> str:
    """
    Encode a record, one block per present field in declaration order.

    Optional fields set to None and empty sequences are left out.
    """
    chunks = []
    for spec in record_fields(type(record)):
        value = getattr(record, spec.name)
        if spec.arity is Arity.SEQUENCE:
            values = list(value or ())
        elif value is None:
            if spec.arity is Arity.OPTIONAL:
                continue
            raise ValueError(f"required field {spec.name} is None")
        else:
            values = [value]
        if not values:
            continue
        chunks.append(f"%{spec.key}%\n")
        chunks.extend(f"{_format_value(spec, item)}\n" for item in values)
        chunks.append("\n")
    return "".join(chunks)


def load(fp: IO[str], record_type: type[R], **kwargs) -> R:
    return loads(fp.read(), record_type, **kwargs)


def dump(record, fp: IO[str]) -> None:
    fp.write(dumps(record))
