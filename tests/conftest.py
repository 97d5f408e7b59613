# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import os

import pytest

from archlinux_repo.config import ENV_PREFIX, reset_settings

from .http_test_server import run_test_server, server_url
from .utils import desc_entry, files_entry, make_archive, sample_packages

REPO_NAME = "core"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch):
    """
    Make sure no ARCHLINUX_REPO_* variables leak into tests.
    """
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    reset_settings()
    yield
    monkeypatch.undo()
    reset_settings()


@pytest.fixture
def repo_dir(tmp_path):
    """
    Directory laid out like a pacman mirror, with gzip and zstd databases and
    one package file.
    """
    packages = sample_packages()
    desc_members = [desc_entry(package) for package in packages]
    files_members = [
        files_entry(
            package,
            [f"usr/share/doc/{package.name}/", f"usr/share/doc/{package.name}/README"],
        )
        for package in packages
    ]
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / f"{REPO_NAME}.db.tar.gz").write_bytes(make_archive(desc_members, "gz"))
    (repo / f"{REPO_NAME}.files.tar.gz").write_bytes(make_archive(files_members, "gz"))
    (repo / f"{REPO_NAME}.db.tar.zst").write_bytes(make_archive(desc_members, "zst"))
    (repo / packages[0].file_name).write_bytes(b"not really a package")
    return repo


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def http_server_repo(repo_dir, requests_seen):
    """
    Serve repo_dir over http; yields the base URL.
    """
    httpd = run_test_server(str(repo_dir), requests_seen)
    yield server_url(httpd)
    httpd.shutdown()
