# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Test the package description codec.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from archlinux_repo import desc
from archlinux_repo.config import reset_settings
from archlinux_repo.desc import Arity, Block, desc_field, dumps, iter_blocks, loads
from archlinux_repo.exceptions import (
    ArityMismatchError,
    DependencyParseError,
    DescError,
    InvalidValueError,
    MalformedBlockError,
    MissingFieldError,
    UnexpectedKeyError,
)
from archlinux_repo.models import Dependency, DependencyConstraint, Package

from .utils import SAMPLE_DESC, make_package


@dataclass
class Simple:
    name: str = desc_field("NAME")
    size: int = desc_field("SIZE")
    note: str | None = desc_field("NOTE", default=None)
    items: list[str] = desc_field("ITEMS", default_factory=list)


@dataclass
class Plain:
    TEST: str


@dataclass
class Unsupported:
    value: float = desc_field("VALUE")


class NotADataclass:
    name: str


def test_decode_sample():
    package = loads(SAMPLE_DESC, Package)
    assert package.name == "mingw-w64-x86_64-ag"
    assert package.base == "mingw-w64-ag"
    assert package.version == "2.2.0-1"
    assert package.compressed_size == 79428
    assert package.installed_size == 145408
    assert package.license == ["Apache"]
    assert package.build_date == datetime(2019, 6, 14, 13, 55, 6, tzinfo=timezone.utc)
    assert package.groups == []
    assert package.optdepends == []
    assert [str(d) for d in package.depends] == [
        "mingw-w64-x86_64-pcre",
        "mingw-w64-x86_64-xz",
        "mingw-w64-x86_64-zlib",
    ]
    assert package.makedepends[1] == Dependency("mingw-w64-x86_64-pkg-config")


def test_encode_sample_is_byte_exact():
    assert dumps(loads(SAMPLE_DESC, Package)) == SAMPLE_DESC


def test_round_trip():
    package = make_package(
        "bar",
        base="bar-base",
        groups=["base-devel", "xorg"],
        license=["GPL-2.0-or-later", "LGPL-2.1-or-later"],
        provides=["libbar.so=1-64"],
        depends=[Dependency.parse("foo>=1.0"), Dependency.parse("baz")],
        optdepends=[Dependency.parse("python: for scripting")],
    )
    assert loads(dumps(package), Package) == package

    record = Simple(name="x", size=-3, note="a note", items=["1", "2"])
    assert loads(dumps(record), Simple) == record


def test_key_defaults_to_field_name():
    assert dumps(Plain(TEST="test")) == "%TEST%\ntest\n\n"
    assert loads("%TEST%\ntest\n", Plain) == Plain(TEST="test")


def test_encode_follows_declaration_order():
    text = "%ITEMS%\na\n\n%NOTE%\nn\n\n%SIZE%\n1\n\n%NAME%\nx\n"
    record = loads(text, Simple)
    assert dumps(record) == "%NAME%\nx\n\n%SIZE%\n1\n\n%NOTE%\nn\n\n%ITEMS%\na\n\n"


def test_sequence_keeps_order():
    text = dumps(Simple(name="x", size=1, items=["a", "b", "c"]))
    assert "%ITEMS%\na\nb\nc\n" in text
    assert loads(text, Simple).items == ["a", "b", "c"]


def test_absent_fields_are_omitted():
    text = dumps(Simple(name="x", size=1))
    assert text == "%NAME%\nx\n\n%SIZE%\n1\n\n"
    record = loads(text, Simple)
    assert record.note is None
    assert record.items == []


def test_missing_required_field():
    with pytest.raises(MissingFieldError) as excinfo:
        loads("%NAME%\nx\n", Simple)
    assert excinfo.value.key == "SIZE"
    assert "%SIZE%" in str(excinfo.value)
    # also an arity problem
    assert isinstance(excinfo.value, ArityMismatchError)


def test_empty_input_misses_first_required_field():
    with pytest.raises(MissingFieldError) as excinfo:
        loads("", Simple)
    assert excinfo.value.key == "NAME"


@pytest.mark.parametrize(
    "value",
    (
        pytest.param("  leading space", id="leading"),
        pytest.param("trailing space  ", id="trailing"),
        pytest.param("   ", id="only-spaces"),
        pytest.param("\ttab", id="tab"),
    ),
)
def test_whitespace_is_preserved(value):
    record = loads(f"%NAME%\n{value}\n\n%SIZE%\n1\n", Simple)
    assert record.name == value
    assert loads(dumps(record), Simple).name == value


def test_trailing_newline_is_optional():
    assert loads("%NAME%\nx\n\n%SIZE%\n1", Simple) == Simple(name="x", size=1)
    assert loads("%NAME%\nx\n\n%SIZE%\n1\n\n\n", Simple) == Simple(name="x", size=1)


def test_extra_blank_lines_between_blocks():
    assert loads("\n%NAME%\nx\n\n\n\n%SIZE%\n1\n", Simple) == Simple(name="x", size=1)


@pytest.mark.parametrize(
    "header",
    (
        pytest.param("NAME", id="no-delimiters"),
        pytest.param("%NAME", id="no-closing"),
        pytest.param("NAME%", id="no-opening"),
        pytest.param("%%", id="empty-key"),
        pytest.param("%NA%ME%", id="inner-percent"),
    ),
)
def test_malformed_header(header):
    with pytest.raises(MalformedBlockError) as excinfo:
        loads(f"%SIZE%\n1\n\n{header}\nx\n", Simple)
    assert excinfo.value.line == 4
    assert str(excinfo.value).startswith("line 4:")


def test_header_without_values():
    with pytest.raises(MalformedBlockError) as excinfo:
        loads("%NAME%\n\n%SIZE%\n1\n", Simple)
    assert excinfo.value.key == "NAME"
    assert excinfo.value.line == 1

    with pytest.raises(MalformedBlockError):
        loads("%SIZE%\n1\n\n%NAME%\n", Simple)


def test_duplicate_block():
    with pytest.raises(MalformedBlockError) as excinfo:
        loads("%NAME%\nx\n\n%SIZE%\n1\n\n%NAME%\ny\n", Simple)
    assert excinfo.value.key == "NAME"
    assert excinfo.value.line == 7


def test_scalar_with_several_values():
    with pytest.raises(ArityMismatchError) as excinfo:
        loads("%NAME%\nfoo\n\n%SIZE%\n1\n2\n", Simple)
    assert excinfo.value.key == "SIZE"
    assert excinfo.value.line == 6

    with pytest.raises(ArityMismatchError):
        loads("%NAME%\nfoo\n\n%SIZE%\n1\n\n%NOTE%\na\nb\n", Simple)


def test_unknown_keys_policy():
    text = "%NAME%\nx\n\n%XDATA%\npkgtype=pkg\n\n%SIZE%\n1\n"
    assert loads(text, Simple) == Simple(name="x", size=1)
    assert loads(text, Simple, unknown_keys="ignore") == Simple(name="x", size=1)
    with pytest.raises(UnexpectedKeyError) as excinfo:
        loads(text, Simple, unknown_keys="error")
    assert excinfo.value.key == "XDATA"
    assert excinfo.value.line == 4

    with pytest.raises(ValueError):
        loads(text, Simple, unknown_keys="maybe")


def test_unknown_keys_policy_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ARCHLINUX_REPO_UNKNOWN_KEYS", "error")
    reset_settings()
    with pytest.raises(UnexpectedKeyError):
        loads("%NAME%\nx\n\n%SIZE%\n1\n\n%OTHER%\ny\n", Simple)


def test_invalid_integer():
    with pytest.raises(InvalidValueError) as excinfo:
        loads("%NAME%\nx\n\n%SIZE%\nlarge\n", Simple)
    assert excinfo.value.key == "SIZE"
    assert excinfo.value.line == 5


def test_invalid_dependency():
    text = SAMPLE_DESC.replace("mingw-w64-x86_64-xz\n", "mingw-w64-x86_64-xz>=\n")
    with pytest.raises(InvalidValueError) as excinfo:
        loads(text, Package)
    assert excinfo.value.key == "DEPENDS"
    assert isinstance(excinfo.value.__cause__, DependencyParseError)


def test_bytes_input():
    assert loads(b"%NAME%\nn\xc3\xa9\n\n%SIZE%\n1\n", Simple).name == "né"
    with pytest.raises(InvalidValueError):
        loads(b"%NAME%\n\xff\n\n%SIZE%\n1\n", Simple)


def test_codec_errors_are_value_errors():
    with pytest.raises(ValueError):
        loads("garbage", Simple)
    with pytest.raises(DescError):
        loads("garbage", Simple)


@pytest.mark.parametrize(
    "record",
    (
        pytest.param(Simple(name="", size=1), id="empty"),
        pytest.param(Simple(name="two\nlines", size=1), id="newline"),
        pytest.param(make_package(build_date=datetime(2021, 1, 1, 12, 0)), id="naive-datetime"),
        pytest.param(
            make_package(build_date=datetime(2021, 1, 1, 0, 0, 0, 500000, tzinfo=timezone.utc)),
            id="sub-second-datetime",
        ),
    ),
)
def test_unrepresentable_values(record):
    with pytest.raises(ValueError):
        dumps(record)


def test_timestamps_round_trip_in_any_timezone():
    plus_two = timezone(timedelta(hours=2))
    package = make_package(build_date=datetime(2021, 1, 1, 14, 0, tzinfo=plus_two))
    assert "%BUILDDATE%\n1609502400\n" in dumps(package)
    decoded = loads(dumps(package), Package)
    assert decoded.build_date == package.build_date
    assert decoded.build_date.tzinfo is timezone.utc


def test_required_none():
    with pytest.raises(ValueError):
        dumps(Simple(name=None, size=1))


def test_record_fields():
    fields = desc.record_fields(Package)
    assert [spec.key for spec in fields[:4]] == ["FILENAME", "NAME", "BASE", "VERSION"]
    by_key = {spec.key: spec for spec in fields}
    assert by_key["NAME"].arity is Arity.SCALAR
    assert by_key["BASE"].arity is Arity.OPTIONAL
    assert by_key["DEPENDS"].arity is Arity.SEQUENCE
    assert by_key["DEPENDS"].element_type is Dependency
    assert by_key["BUILDDATE"].element_type is datetime
    assert "linked_sources" not in [spec.name for spec in fields]
    # built once
    assert desc.record_fields(Package) is fields


def test_record_fields_rejects_bad_types():
    with pytest.raises(TypeError):
        desc.record_fields(NotADataclass)
    with pytest.raises(TypeError):
        desc.record_fields(Unsupported)
    with pytest.raises(TypeError):
        dumps(Simple)


def test_register_converter():
    @dataclass
    class WithConstraint:
        constraint: DependencyConstraint = desc_field("CONSTRAINT")

    desc.register_converter(DependencyConstraint, DependencyConstraint, str)
    record = WithConstraint(DependencyConstraint.MORE_OR_EQUALS)
    assert dumps(record) == "%CONSTRAINT%\n>=\n\n"
    assert loads(dumps(record), WithConstraint) == record
    with pytest.raises(InvalidValueError):
        loads("%CONSTRAINT%\n!=\n", WithConstraint)


def test_iter_blocks():
    blocks = list(iter_blocks("%A%\n1\n\n%B%\n2\n3\n\n%UNKNOWN%\nx"))
    assert blocks == [
        Block("A", ["1"], 1),
        Block("B", ["2", "3"], 4),
        Block("UNKNOWN", ["x"], 8),
    ]


def test_load_and_dump_files():
    buffer = io.StringIO()
    desc.dump(Simple(name="x", size=2), buffer)
    buffer.seek(0)
    assert desc.load(buffer, Simple) == Simple(name="x", size=2)


def test_skipped_fields_stay_out_of_descriptions():
    @dataclass
    class WithCache:
        name: str = desc_field("NAME")
        hits: int = desc_field(skip=True, default=0)

    assert dumps(WithCache(name="x", hits=3)) == "%NAME%\nx\n\n"
    assert loads("%NAME%\nx\n", WithCache) == WithCache(name="x", hits=0)
    with pytest.raises(UnexpectedKeyError):
        loads("%NAME%\nx\n\n%hits%\n3\n", WithCache, unknown_keys="error")
