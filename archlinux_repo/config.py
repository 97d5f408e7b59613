# Copyright (C) 2022 Anaconda, Inc
# Copyright (C) 2023 conda
# SPDX-License-Identifier: BSD-3-Clause
"""
Settings read from ``ARCHLINUX_REPO_*`` environment variables.

``get_settings()`` reads the environment once; call ``reset_settings()`` after
changing it (mostly useful in tests).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

ENV_PREFIX = "ARCHLINUX_REPO_"
UNKNOWN_KEY_POLICIES = ("ignore", "error")

# same defaults as conda's remote_connect_timeout_secs / remote_read_timeout_secs
DEFAULT_CONNECT_TIMEOUT = 9.15
DEFAULT_READ_TIMEOUT = 60.0


@dataclass(frozen=True)
class Settings:
    decode_threads: int = 1
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    unknown_keys: str = "ignore"
    cache_dir: Path | None = None

    def __post_init__(self):
        if self.unknown_keys not in UNKNOWN_KEY_POLICIES:
            raise ValueError(
                f"unknown_keys must be one of {UNKNOWN_KEY_POLICIES}, got {self.unknown_keys!r}"
            )
        if self.decode_threads < 1:
            raise ValueError(f"decode_threads must be at least 1, got {self.decode_threads}")

    @property
    def timeout(self) -> tuple[float, float]:
        """(connect, read) tuple as accepted by requests."""
        return (self.connect_timeout, self.read_timeout)

    @classmethod
    def from_env(cls, environ=None) -> Settings:
        environ = os.environ if environ is None else environ

        def get(name):
            return environ.get(f"{ENV_PREFIX}{name}") or None

        kwargs = {}
        if (value := get("DECODE_THREADS")) is not None:
            kwargs["decode_threads"] = int(value)
        if (value := get("CONNECT_TIMEOUT")) is not None:
            kwargs["connect_timeout"] = float(value)
        if (value := get("READ_TIMEOUT")) is not None:
            kwargs["read_timeout"] = float(value)
        if (value := get("UNKNOWN_KEYS")) is not None:
            kwargs["unknown_keys"] = value.lower()
        if (value := get("CACHE_DIR")) is not None:
            kwargs["cache_dir"] = Path(value).expanduser()
        settings = cls(**kwargs)
        log.debug("Loaded %s", settings)
        return settings


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> Settings:
    global _settings
    _settings = None
    return get_settings()
