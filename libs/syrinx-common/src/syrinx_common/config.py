"""Environment-variable readers for Syrinx services.

Values are read once, when a service's config class body is evaluated, so a
malformed variable fails at import time with the variable's name in the message.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")

_TRUE = ("true", "1", "yes", "on")


class ConfigError(ValueError):
    """An environment variable is set but cannot be parsed."""


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _parse(key: str, default: T, parse: Callable[[str], T]) -> T:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key}={raw!r} is not a valid {parse.__name__}") from exc


def get_env_int(key: str, default: int = 0) -> int:
    return _parse(key, default, int)


def get_env_float(key: str, default: float = 0.0) -> float:
    return _parse(key, default, float)


def get_env_bool(key: str, default: bool = False) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE
